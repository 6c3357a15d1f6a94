"""
Stock adjustment for settled orders.

Each order item that references a product lowers that product's stock by
the ordered quantity, floored at zero. Reaching zero marks the product as
out of stock. Items are processed independently: one failing item does not
stop the others, and an item is claimed through `OrderItem.stock_adjusted`
before its product is touched so it is never adjusted twice.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from django.db import transaction

from shop.models import Order, OrderItem, Product

logger = logging.getLogger(__name__)


@dataclass
class StockAdjustment:
    adjusted: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class StockAdjuster:
    def apply_order(self, order: Order) -> StockAdjustment:
        result = StockAdjustment()
        for item in order.items.all():
            if not item.product_id:
                continue
            try:
                if self.apply_item(item):
                    result.adjusted.append(item.pk)
                else:
                    result.skipped.append(item.pk)
            except Exception:
                logger.exception(
                    "Stock update error for item %s of %s", item.pk, order.custom_order_id
                )
                result.failed.append(item.pk)
        return result

    def apply_item(self, item: OrderItem) -> bool:
        """
        Decrement stock for one item. Returns False if the item was
        already adjusted or its product no longer exists.
        """
        with transaction.atomic():
            claimed = OrderItem.objects.filter(pk=item.pk, stock_adjusted=False).update(
                stock_adjusted=True
            )
            if not claimed:
                return False

            product = Product.objects.select_for_update().filter(pk=item.product_id).first()
            if product is None:
                return False

            product.stock = max(0, (product.stock or 0) - (item.quantity or 1))
            if product.stock == 0:
                product.in_stock = False
            product.save(update_fields=["stock", "in_stock", "updated_at"])

        item.stock_adjusted = True
        logger.debug("Stock for %s now %s", product.name, product.stock)
        return True
