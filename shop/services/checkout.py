"""
Checkout initiation.

Creates the pending order first so it exists even if the customer closes
the browser during payment, then opens a PhonePe hosted checkout for it.
A checkout that PhonePe refuses (or that times out) leaves the order in
`failed`, never in `pending`.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction

from core.phonepe_integration.client import CheckoutSession, PhonePeClient, get_phonepe_client
from core.phonepe_integration.exceptions import ConfigurationError, PaymentGatewayException
from shop.models import Order, OrderAddOn, OrderCounter, OrderItem

from .settlement import SettlementReconciler

logger = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def generate_merchant_order_id() -> str:
    """`MT<epoch-ms><6 base36 chars>`, unique per checkout attempt."""
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"MT{int(time.time() * 1000)}{suffix}"


def next_custom_order_id() -> str:
    prefix = getattr(settings, "ORDER_CODE_PREFIX", "decorationcelebration")
    return f"{prefix}{OrderCounter.next_value('order')}"


@dataclass
class CheckoutResult:
    order: Order
    session: Optional[CheckoutSession] = None
    error: Optional[PaymentGatewayException] = None

    @property
    def success(self) -> bool:
        return self.session is not None


class CheckoutService:
    def __init__(
        self,
        client: Optional[PhonePeClient] = None,
        reconciler: Optional[SettlementReconciler] = None,
    ) -> None:
        self.client = client or get_phonepe_client()
        self.reconciler = reconciler or SettlementReconciler()

    @staticmethod
    def check_configuration() -> None:
        """
        Raises:
            ConfigurationError: PhonePe credentials or storefront URLs missing
        """
        if not settings.PHONEPE_CLIENT_ID or not settings.PHONEPE_CLIENT_SECRET:
            logger.error("[checkout] PhonePe credentials not configured")
            raise ConfigurationError("Payment gateway not configured. Please contact support.")

        missing = [name for name in ("FRONTEND_URL", "BACKEND_URL") if not getattr(settings, name, None)]
        if missing:
            logger.error("[checkout] URL configuration missing: %s", ", ".join(missing))
            raise ConfigurationError(
                "Application configuration missing. Please contact support.", missing=missing
            )

    def initiate(self, data: Dict[str, Any]) -> CheckoutResult:
        """
        Create a pending order from validated checkout data and open a
        PhonePe checkout for it.

        Args:
            data: `CheckoutRequestSerializer.validated_data`
        """
        self.check_configuration()

        order = self.create_pending_order(data)
        logger.info("[checkout] Pending order created: %s", order.custom_order_id)

        redirect_url = (
            f"{settings.FRONTEND_URL.rstrip('/')}/payment/status"
            f"?orderId={order.phonepe_merchant_order_id}"
        )

        try:
            session = self.client.create_checkout(order, data["amount"], redirect_url)
        except PaymentGatewayException as exc:
            logger.error("[checkout] PhonePe checkout failed for %s: %s", order.custom_order_id, exc.message)
            self.reconciler.mark_failed(order, reason=f"checkout: {exc.message}")
            return CheckoutResult(order=order, error=exc)

        order.phonepe_order_id = session.phonepe_order_id
        order.save(update_fields=["phonepe_order_id", "updated_at"])
        return CheckoutResult(order=order, session=session)

    @transaction.atomic
    def create_pending_order(self, data: Dict[str, Any]) -> Order:
        order = Order.objects.create(
            custom_order_id=next_custom_order_id(),
            phonepe_merchant_order_id=generate_merchant_order_id(),
            customer_name=data["customer_name"],
            email=data["email"],
            phone=data["phone"],
            address=data["address"],
            total_amount=data.get("final_total") or data["amount"],
            payment_method=data.get("payment_method") or Order.PaymentMethod.ONLINE,
            payment_status=Order.PaymentStatus.PENDING,
            upfront_amount=data.get("upfront_amount") or Decimal("0"),
            remaining_amount=data.get("remaining_amount") or Decimal("0"),
            seller_token=data.get("seller_token") or "",
            coupon_code=data.get("coupon_code") or "",
            scheduled_delivery=data.get("scheduled_delivery"),
        )

        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product=item.get("product"),
                    name=item["name"],
                    price=item["price"],
                    quantity=item["quantity"],
                    image=item.get("image") or "",
                )
                for item in data["items"]
            ]
        )
        OrderAddOn.objects.bulk_create(
            [OrderAddOn(order=order, name=add_on["name"], price=add_on["price"]) for add_on in data.get("add_ons", [])]
        )
        return order
