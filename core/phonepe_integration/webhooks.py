"""
PhonePe webhook authorization.

PhonePe signs every server-to-server callback with the username/password
pair configured in its dashboard: the `Authorization` header carries
`hex(SHA256("<username>:<password>"))`. The header is compared in
constant time and case-insensitively before the payload is trusted.
"""

import hashlib
import hmac
import logging
from typing import Optional

from django.conf import settings

from .exceptions import AuthError, ConfigurationError

logger = logging.getLogger(__name__)

EVENT_ORDER_COMPLETED = "checkout.order.completed"
EVENT_ORDER_FAILED = "checkout.order.failed"


def expected_authorization(username: str, password: str) -> str:
    return hashlib.sha256(f"{username}:{password}".encode("utf-8")).hexdigest()


def verify_webhook_authorization(auth_header: Optional[str]) -> None:
    """
    Raises:
        AuthError: header missing or wrong (401)
        ConfigurationError: webhook credentials not configured (500)
    """
    if not auth_header:
        logger.warning("[webhook] Missing Authorization header")
        raise AuthError("Unauthorized", auth_step="webhook_header")

    username = getattr(settings, "PHONEPE_WEBHOOK_USERNAME", None)
    password = getattr(settings, "PHONEPE_WEBHOOK_PASSWORD", None)
    if not username or not password:
        logger.error("[webhook] Webhook credentials not configured")
        raise ConfigurationError(
            "Server configuration error",
            missing=[
                name
                for name, value in (
                    ("PHONEPE_WEBHOOK_USERNAME", username),
                    ("PHONEPE_WEBHOOK_PASSWORD", password),
                )
                if not value
            ],
        )

    expected = expected_authorization(username, password)
    provided = auth_header.strip().lower()
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("[webhook] Invalid Authorization header")
        raise AuthError("Unauthorized", auth_step="webhook_signature")
