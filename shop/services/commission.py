"""
Commission Ledger

Records the commission a referral seller earns on a paid order. One entry
per order: the `Commission.order` one-to-one relation makes repeated calls
return the existing row instead of creating a second one.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from core.phonepe_integration.exceptions import NotFoundError
from shop.models import Commission, Order, Seller

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class CommissionLedger:
    def __init__(self, rate: Optional[Decimal] = None) -> None:
        self._rate = rate

    @property
    def rate(self) -> Decimal:
        if self._rate is not None:
            return Decimal(self._rate)
        return Decimal(str(getattr(settings, "SELLER_COMMISSION_RATE", "0.30")))

    def record(self, order: Order) -> Optional[Commission]:
        """
        Create the commission entry for `order` if it carries a seller token.

        Returns:
            The (new or existing) Commission, or None without a seller token

        Raises:
            NotFoundError: No seller matches the order's seller token
        """
        if not order.seller_token:
            return None

        seller = Seller.objects.filter(seller_token=order.seller_token).first()
        if seller is None:
            raise NotFoundError(
                f"Seller not found for token {order.seller_token}", resource="seller"
            )

        base_amount = order.total_amount
        rate = self.rate
        amount = (base_amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)

        try:
            with transaction.atomic():
                commission, created = Commission.objects.get_or_create(
                    order=order,
                    defaults={
                        "seller": seller,
                        "base_amount": base_amount,
                        "commission_rate": rate,
                        "commission_amount": amount,
                    },
                )
        except IntegrityError:
            # A concurrent settlement of the same order inserted first.
            commission, created = Commission.objects.get(order=order), False

        if created:
            logger.info(
                "Commission entry created for seller %s: ₹%s on %s",
                seller.business_name,
                amount,
                order.custom_order_id,
            )
        else:
            logger.info("Commission for %s already recorded", order.custom_order_id)
        return commission
