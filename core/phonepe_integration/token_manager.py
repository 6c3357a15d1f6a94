"""
PhonePe OAuth Token Manager

This module caches the OAuth access token PhonePe requires on every
Standard Checkout API call. PhonePe limits how often tokens may be
requested, so a token is reused until its absolute expiry and only then
exchanged again using the client-credentials grant.

The cache keeps exactly one token per client id in the Django cache
backend (Redis in production, local memory in development). A token is
reused only while `now < expires_at`; past that point the next caller
refreshes synchronously before its API call proceeds.

Author: Decoryy Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from threading import Lock
from typing import Optional, Dict, Any, Callable

import requests
from django.conf import settings
from django.core.cache import cache as default_cache

from .exceptions import AuthError, ConfigurationError, GatewayError, GatewayTimeout

logger = logging.getLogger(__name__)

OAUTH_URLS = {
    "production": "https://api.phonepe.com/apis/identity-manager/v1/oauth/token",
    "sandbox": "https://api-preprod.phonepe.com/apis/pg-sandbox/v1/oauth/token",
}


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


@dataclass(frozen=True)
class OAuthToken:
    """Bearer token plus the absolute moment it stops being valid."""

    access_token: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


class PhonePeTokenCache:
    """
    Single-slot cache for the PhonePe OAuth access token.

    Attributes:
        CACHE_PREFIX (str): Prefix for cache keys

    Example:
        >>> token_cache = PhonePeTokenCache()
        >>> access_token = token_cache.get_token()
        >>> headers = {"Authorization": f"O-Bearer {access_token}"}
    """

    CACHE_PREFIX = "phonepe_oauth_token"

    def __init__(
        self,
        cache=None,
        clock: Optional[Callable[[], datetime]] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        environment: Optional[str] = None,
    ) -> None:
        """
        Args:
            cache: Django cache backend (defaults to `django.core.cache.cache`)
            clock: Callable returning an aware "now" (injectable for tests)
            client_id / client_secret / environment: Override Django settings
        """
        self._cache = cache if cache is not None else default_cache
        self._clock = clock or _utcnow
        self._client_id = client_id
        self._client_secret = client_secret
        self._environment = environment
        self._lock = Lock()

    # ---------- configuration ----------

    @property
    def client_id(self) -> Optional[str]:
        return self._client_id or getattr(settings, "PHONEPE_CLIENT_ID", None)

    @property
    def client_secret(self) -> Optional[str]:
        return self._client_secret or getattr(settings, "PHONEPE_CLIENT_SECRET", None)

    @property
    def environment(self) -> str:
        return self._environment or getattr(settings, "PHONEPE_ENV", "sandbox")

    @property
    def token_url(self) -> str:
        if self.environment == "production":
            return OAUTH_URLS["production"]
        return OAUTH_URLS["sandbox"]

    @property
    def cache_key(self) -> str:
        return f"{self.CACHE_PREFIX}_{self.client_id}"

    def _validate_credentials(self) -> None:
        missing = []
        if not self.client_id:
            missing.append("PHONEPE_CLIENT_ID")
        if not self.client_secret:
            missing.append("PHONEPE_CLIENT_SECRET")
        if missing:
            raise ConfigurationError(
                f"PhonePe OAuth credentials not configured: {', '.join(missing)}",
                missing=missing,
            )

    # ---------- public API ----------

    def get_token(self, force_refresh: bool = False) -> str:
        """
        Return a valid access token, refreshing it first if needed.

        Args:
            force_refresh: Skip the cached token even if it is still valid

        Returns:
            PhonePe access token string

        Raises:
            ConfigurationError: Client credentials are missing
            AuthError: PhonePe rejected the credentials
            GatewayTimeout / GatewayError: Token endpoint unreachable
        """
        self._validate_credentials()

        if not force_refresh:
            token = self._cached_token()
            if token:
                logger.debug("Using cached PhonePe access token")
                return token.access_token

        with self._lock:
            # Another thread of this worker may have refreshed while we waited.
            if not force_refresh:
                token = self._cached_token()
                if token:
                    return token.access_token
            return self.refresh().access_token

    def refresh(self) -> OAuthToken:
        """
        Exchange client credentials for a new token and store it,
        replacing any cached token.
        """
        self._validate_credentials()
        logger.info("Requesting new PhonePe OAuth token from %s", self.token_url)

        token_data = self._request_token()
        token = self._build_token(token_data)

        timeout = max(int((token.expires_at - self._clock()).total_seconds()), 1)
        self._cache.set(self.cache_key, token, timeout=timeout)

        logger.info("PhonePe OAuth token obtained, expires at %s", token.expires_at.isoformat())
        return token

    def invalidate(self) -> bool:
        """
        Drop the cached token, e.g. after PhonePe answered 401.

        Returns:
            True if a token was cached, False otherwise
        """
        if self._cache.get(self.cache_key) is None:
            return False
        self._cache.delete(self.cache_key)
        logger.info("PhonePe OAuth token cache invalidated")
        return True

    # ---------- internals ----------

    def _cached_token(self) -> Optional[OAuthToken]:
        token = self._cache.get(self.cache_key)
        if isinstance(token, OAuthToken) and token.is_valid(self._clock()):
            return token
        return None

    def _build_token(self, token_data: Dict[str, Any]) -> OAuthToken:
        access_token = token_data.get("access_token")
        if not access_token:
            raise AuthError("Invalid OAuth response from PhonePe", auth_step="token_extraction")

        expires_at = token_data.get("expires_at")
        if expires_at:
            expiry = datetime.fromtimestamp(int(expires_at), tz=dt_timezone.utc)
        else:
            fallback = getattr(settings, "PHONEPE_TOKEN_FALLBACK_TTL", 3600)
            expiry = self._clock() + timedelta(seconds=fallback)

        return OAuthToken(access_token=access_token, expires_at=expiry)

    def _request_token(self) -> Dict[str, Any]:
        """
        POST the client-credentials grant to PhonePe.

        Raises:
            AuthError: Credentials rejected (INVALID_CLIENT gets an actionable message)
            GatewayTimeout: Request timed out
            GatewayError: Connection failure, 5xx answer or non-JSON body
        """
        request_data = {
            "client_id": self.client_id,
            "client_version": getattr(settings, "PHONEPE_CLIENT_VERSION", "1"),
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        timeout = getattr(settings, "PHONEPE_REQUEST_TIMEOUT", 30)

        try:
            response = requests.post(self.token_url, data=request_data, headers=headers, timeout=timeout)
        except requests.exceptions.Timeout:
            logger.error("PhonePe OAuth token request timed out after %ss", timeout)
            raise GatewayTimeout(f"PhonePe OAuth token request timed out after {timeout}s", timeout=timeout)
        except requests.exceptions.RequestException as e:
            logger.error("PhonePe OAuth token request failed: %s", e)
            raise GatewayError(f"Failed to get PhonePe OAuth token: {e}")

        try:
            token_data = response.json()
        except ValueError:
            token_data = None

        if response.status_code == 200 and isinstance(token_data, dict) and token_data:
            return token_data

        if response.status_code >= 500:
            logger.error("PhonePe OAuth endpoint unavailable: %s - %s", response.status_code, response.text[:200])
            raise GatewayError(
                "PhonePe OAuth service unavailable",
                status_code=response.status_code,
                details={"status": response.status_code},
            )

        if not isinstance(token_data, dict):
            logger.error("PhonePe OAuth response is not a JSON object (status %s)", response.status_code)
            raise GatewayError(
                "Invalid OAuth response from PhonePe",
                details={"status": response.status_code},
            )

        self._handle_token_error_response(response, token_data)

    def _handle_token_error_response(self, response: requests.Response, error_data: Dict[str, Any]) -> None:
        error_code = error_data.get("code") or error_data.get("error")
        logger.error(
            "PhonePe OAuth token error: %s - %s",
            response.status_code,
            error_data or response.text[:200],
        )

        if error_code == "INVALID_CLIENT":
            raise AuthError(
                "PhonePe credentials are invalid or not configured. Please check your "
                "PHONEPE_CLIENT_ID and PHONEPE_CLIENT_SECRET environment variables.",
                auth_step="token_request",
                error_code="INVALID_CLIENT",
            )

        raise AuthError(
            "Failed to get PhonePe OAuth token",
            auth_step="token_request",
            status_code=401,
            error_code=error_code,
        )


# Lazy-loaded singleton instance for application-wide use
class _LazyPhonePeTokenCache:
    """
    Lazy wrapper so importing this module never touches settings or the cache.
    The real PhonePeTokenCache is only built when first accessed.
    """

    def __init__(self):
        self._instance: Optional[PhonePeTokenCache] = None
        self._lock = Lock()

    def __getattr__(self, name):
        if self._instance is None:
            with self._lock:
                if self._instance is None:
                    self._instance = PhonePeTokenCache()
        return getattr(self._instance, name)

    def __repr__(self):
        return f"<LazyPhonePeTokenCache: {'initialized' if self._instance else 'not initialized'}>"


phonepe_token_cache = _LazyPhonePeTokenCache()
