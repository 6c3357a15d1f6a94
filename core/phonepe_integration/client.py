"""
PhonePe Standard Checkout v2 Client

Thin wrapper around the PhonePe payment gateway HTTP API:

- create_checkout  → POST /checkout/v2/pay
- query_status     → GET  /checkout/v2/order/<merchantOrderId>/status
- refund           → POST /payments/v2/refund
- refund_status    → GET  /payments/v2/refund/<merchantRefundId>/status

Every call carries an `O-Bearer` token from the OAuth token cache and a
bounded timeout. Failures are translated into the payment exception
hierarchy so callers can tell a timeout (`GatewayTimeout`) from a rejected
request (`GatewayError`) from a credential problem (`AuthError`).

Amounts are passed in rupees as `Decimal` and converted to paise here.

Author: Decoryy Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from threading import Lock
from typing import Dict, Any, Optional

import requests
from django.conf import settings

from .exceptions import (
    AuthError,
    GatewayError,
    GatewayTimeout,
    create_exception_from_response,
)
from .token_manager import phonepe_token_cache

logger = logging.getLogger(__name__)

BASE_URLS = {
    "production": "https://api.phonepe.com/apis/pg",
    "sandbox": "https://api-preprod.phonepe.com/apis/pg-sandbox",
}

STATE_COMPLETED = "COMPLETED"
STATE_FAILED = "FAILED"
STATE_PENDING = "PENDING"

# PhonePe has used several spellings for the same outcome across API versions.
_STATE_ALIASES = {
    "COMPLETED": STATE_COMPLETED,
    "SUCCESS": STATE_COMPLETED,
    "PAYMENT_SUCCESS": STATE_COMPLETED,
    "FAILED": STATE_FAILED,
    "FAILURE": STATE_FAILED,
    "PAYMENT_ERROR": STATE_FAILED,
    "PAYMENT_DECLINED": STATE_FAILED,
    "EXPIRED": STATE_FAILED,
    "PENDING": STATE_PENDING,
    "PAYMENT_PENDING": STATE_PENDING,
    "INITIATED": STATE_PENDING,
}


def normalize_state(state: Optional[str]) -> str:
    """Map any PhonePe state spelling onto COMPLETED / FAILED / PENDING."""
    if not state:
        return STATE_PENDING
    return _STATE_ALIASES.get(str(state).upper(), STATE_PENDING)


def to_paise(amount) -> int:
    """Convert a rupee amount to integer paise (half-up)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class CheckoutSession:
    redirect_url: str
    phonepe_order_id: str
    state: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentStatus:
    state: str
    amount: Optional[int] = None
    error_code: Optional[str] = None
    detailed_error_code: Optional[str] = None
    transaction_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.state == STATE_COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.state == STATE_FAILED


@dataclass
class RefundResult:
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)


class PhonePeClient:
    """
    PhonePe payment gateway client.

    Example:
        >>> client = PhonePeClient()
        >>> session = client.create_checkout(order, order.total_amount, redirect_url)
        >>> session.redirect_url
        'https://mercury-uat.phonepe.com/transact/...'
    """

    def __init__(self, token_cache=None, base_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.token_cache = token_cache if token_cache is not None else phonepe_token_cache
        self._base_url = base_url
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        if self._base_url:
            return self._base_url.rstrip("/")
        if getattr(settings, "PHONEPE_ENV", "sandbox") == "production":
            return BASE_URLS["production"]
        return BASE_URLS["sandbox"]

    @property
    def timeout(self) -> float:
        return self._timeout or getattr(settings, "PHONEPE_REQUEST_TIMEOUT", 30)

    # ---------- API operations ----------

    def create_checkout(self, order, amount, redirect_url: str) -> CheckoutSession:
        """
        Create a hosted checkout session for `order`.

        Args:
            order: `shop.models.Order` with `phonepe_merchant_order_id` already set
            amount: Amount to collect now in rupees (upfront amount for COD)
            redirect_url: Where PhonePe sends the browser after checkout

        Raises:
            GatewayError: PhonePe answered without an order id
        """
        merchant_order_id = order.phonepe_merchant_order_id
        if order.is_cash_on_delivery:
            message = f"Upfront payment ₹{amount} for COD order {merchant_order_id}"
        else:
            message = f"Payment for order {merchant_order_id}"

        payload = {
            "merchantOrderId": merchant_order_id,
            "amount": to_paise(amount),
            "expireAfter": getattr(settings, "PHONEPE_CHECKOUT_EXPIRY_SECONDS", 1200),
            "metaInfo": {
                "udf1": order.customer_name,
                "udf2": order.email,
                "udf3": order.phone,
                "udf4": order.seller_token or "",
                "udf5": order.coupon_code or "",
                "udf6": f"upfront:{order.upfront_amount}" if order.upfront_amount else "",
                "udf7": f"remaining:{order.remaining_amount}" if order.remaining_amount else "",
            },
            "paymentFlow": {
                "type": "PG_CHECKOUT",
                "message": message,
                "merchantUrls": {"redirectUrl": redirect_url},
            },
        }

        logger.info("[checkout] Creating PhonePe checkout for %s", merchant_order_id)
        data = self._request("POST", "/checkout/v2/pay", payload=payload)

        if not data.get("orderId"):
            logger.error("[checkout] PhonePe payment initiation failed: %s", data)
            raise GatewayError(
                data.get("message") or "PhonePe payment initiation failed",
                error_code=data.get("code"),
                details=data,
            )

        return CheckoutSession(
            redirect_url=data.get("redirectUrl"),
            phonepe_order_id=data["orderId"],
            state=data.get("state"),
            raw=data,
        )

    def query_status(self, merchant_order_id: str) -> PaymentStatus:
        """
        Fetch the current settlement state of an order. Safe to repeat.

        Raises:
            GatewayError: PhonePe returned `success: false` or no state
        """
        data = self._request("GET", f"/checkout/v2/order/{merchant_order_id}/status")

        if data.get("state"):
            payment_details = data.get("paymentDetails") or []
            transaction_id = None
            if payment_details and isinstance(payment_details[0], dict):
                transaction_id = payment_details[0].get("transactionId")
            return PaymentStatus(
                state=normalize_state(data["state"]),
                amount=data.get("amount"),
                error_code=data.get("errorCode"),
                detailed_error_code=data.get("detailedErrorCode"),
                transaction_id=transaction_id,
                raw=data,
            )

        if data.get("success") is False:
            raise GatewayError(
                data.get("message") or "Failed to get transaction status",
                status_code=400,
                error_code=data.get("code"),
                details=data,
            )
        raise GatewayError("Invalid response from PhonePe", details=data)

    def refund(self, merchant_refund_id: str, original_merchant_order_id: str, amount) -> RefundResult:
        payload = {
            "merchantRefundId": merchant_refund_id,
            "originalMerchantOrderId": original_merchant_order_id,
            "amount": to_paise(amount),
        }
        logger.info("Requesting PhonePe refund %s for %s", merchant_refund_id, original_merchant_order_id)
        data = self._request("POST", "/payments/v2/refund", payload=payload)
        return self._refund_result(data, "Failed to process refund")

    def refund_status(self, merchant_refund_id: str) -> RefundResult:
        data = self._request("GET", f"/payments/v2/refund/{merchant_refund_id}/status")
        return self._refund_result(data, "Failed to get refund status")

    # ---------- internals ----------

    @staticmethod
    def _refund_result(data: Dict[str, Any], fallback_message: str) -> RefundResult:
        if not data.get("success"):
            raise GatewayError(
                data.get("message") or fallback_message,
                status_code=400,
                error_code=data.get("code"),
                details=data,
            )
        return RefundResult(success=True, data=data.get("data") or {}, raw=data)

    def _request(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute an authenticated PhonePe API call and return the JSON body.

        Raises:
            ConfigurationError / AuthError: From the token cache
            AuthError: PhonePe answered 401 (cached token is dropped)
            GatewayTimeout: Request timed out
            GatewayError / NotFoundError: Non-2xx answers and transport errors
        """
        access_token = self.token_cache.get_token()
        url = f"{self.base_url}{endpoint}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"O-Bearer {access_token}",
        }

        try:
            logger.debug("PhonePe API call: %s %s", method, endpoint)
            response = requests.request(method, url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.error("PhonePe request timed out: %s %s", method, endpoint)
            raise GatewayTimeout(f"PhonePe request timed out after {self.timeout}s", timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error("PhonePe request failed for %s: %s", endpoint, e)
            raise GatewayError(f"PhonePe request failed: {e}", details={"endpoint": endpoint})

        return self._process_response(response, endpoint)

    def _process_response(self, response: requests.Response, endpoint: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            data = {}

        if 200 <= response.status_code < 300:
            if not isinstance(data, dict):
                raise GatewayError("Invalid response from PhonePe", details={"endpoint": endpoint})
            return data

        body = data if isinstance(data, dict) else {}
        message = body.get("message") or f"PhonePe returned status {response.status_code}"
        logger.warning("PhonePe error on %s: %s %s", endpoint, response.status_code, body or response.text[:200])

        exc = create_exception_from_response(
            response.status_code, message, error_code=body.get("code"), details=body
        )
        if isinstance(exc, AuthError):
            self.token_cache.invalidate()
        raise exc


# Lazily-built default client shared by the views and management commands
_default_client: Optional[PhonePeClient] = None
_default_client_lock = Lock()


def get_phonepe_client() -> PhonePeClient:
    global _default_client
    if _default_client is None:
        with _default_client_lock:
            if _default_client is None:
                _default_client = PhonePeClient()
    return _default_client

