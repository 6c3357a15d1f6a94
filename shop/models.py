"""
Shop Models - Decoryy

Data models the payment-settlement workflow reads and writes:

- OrderCounter: named sequences for human-readable order codes
- Seller: referral partners that earn a commission on paid orders
- Product: the slice of the catalog settlement touches (price, stock)
- Order / OrderItem / OrderAddOn: a customer order and its lines
- Commission: one commission entry per referred, paid order

Catalog management (cities, categories, subcategories) lives outside this
app; only the fields needed for stock adjustment are modelled here.

Author: Decoryy Development Team
Version: 1.0.0
"""

from decimal import Decimal
from typing import Optional

from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.db.models import F, Q


class OrderCounter(models.Model):
    """Named monotonic sequence (e.g. "order" → 1, 2, 3 …)."""

    name = models.CharField(max_length=50, unique=True)
    seq = models.PositiveBigIntegerField(default=0)

    class Meta:
        verbose_name = "Order counter"
        verbose_name_plural = "Order counters"

    def __str__(self):
        return f"{self.name}: {self.seq}"

    @classmethod
    def next_value(cls, name: str) -> int:
        """Atomically increment the named sequence and return the new value."""
        with transaction.atomic():
            counter, _ = cls.objects.select_for_update().get_or_create(name=name)
            cls.objects.filter(pk=counter.pk).update(seq=F("seq") + 1)
            counter.refresh_from_db(fields=["seq"])
            return counter.seq


class Seller(models.Model):
    """Referral partner identified on orders by its seller token."""

    business_name = models.CharField(max_length=255)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=30, blank=True)
    seller_token = models.CharField(max_length=64, unique=True)
    approved = models.BooleanField(default=False)
    blocked = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["business_name"]

    def __str__(self):
        return self.business_name


class Product(models.Model):
    """Catalog product, reduced to what settlement reads and adjusts."""

    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    stock = models.PositiveIntegerField(default=0)
    in_stock = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.stock})"


class OrderQuerySet(models.QuerySet):
    def pending(self):
        return self.filter(payment_status=Order.PaymentStatus.PENDING)

    def for_email(self, email: str):
        return self.filter(email__iexact=email)


class OrderManager(models.Manager.from_queryset(OrderQuerySet)):
    def find_for_payment(
        self, merchant_order_id: Optional[str] = None, *fallback_ids: Optional[str]
    ) -> Optional["Order"]:
        """
        Resolve the order a PhonePe signal refers to.

        The merchant order id is the canonical correlation key. Processor
        order ids and transaction ids are only consulted when the merchant
        id is missing or unknown.
        """
        qs = self.get_queryset().prefetch_related("items", "add_ons")
        if merchant_order_id:
            order = qs.filter(phonepe_merchant_order_id=merchant_order_id).first()
            if order:
                return order

        for candidate in fallback_ids:
            if not candidate:
                continue
            order = qs.filter(
                Q(phonepe_order_id=candidate) | Q(transaction_id=candidate)
            ).first()
            if order:
                return order
        return None


class Order(models.Model):
    """A customer order and its payment lifecycle."""

    class PaymentMethod(models.TextChoices):
        ONLINE = "online", "Online"
        CASH_ON_DELIVERY = "cash-on-delivery", "Cash on delivery"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        PENDING_UPFRONT = "pending_upfront", "Upfront paid, rest on delivery"
        FAILED = "failed", "Failed"

    SETTLED_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.PENDING_UPFRONT)

    custom_order_id = models.CharField(max_length=64, unique=True)
    phonepe_merchant_order_id = models.CharField(
        max_length=64,
        unique=True,
        null=True,
        blank=True,
        help_text="Merchant order id sent to PhonePe; correlates webhooks, callbacks and polls.",
    )
    phonepe_order_id = models.CharField(
        max_length=64, blank=True, db_index=True, help_text="Order id assigned by PhonePe at checkout creation."
    )
    transaction_id = models.CharField(
        max_length=64, blank=True, db_index=True, help_text="PhonePe transaction id, set once the payment settles."
    )

    customer_name = models.CharField(max_length=255)
    email = models.EmailField()
    phone = models.CharField(max_length=30)
    address = models.JSONField(default=dict, blank=True)

    payment_method = models.CharField(
        max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.ONLINE
    )
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )
    total_amount = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))]
    )
    upfront_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    remaining_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))

    seller_token = models.CharField(max_length=64, blank=True)
    coupon_code = models.CharField(max_length=64, blank=True)
    scheduled_delivery = models.DateTimeField(null=True, blank=True)

    confirmation_sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrderManager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["email", "created_at"]),
        ]

    def __str__(self):
        return f"{self.custom_order_id} ({self.payment_status})"

    @property
    def is_cash_on_delivery(self) -> bool:
        return self.payment_method == self.PaymentMethod.CASH_ON_DELIVERY

    @property
    def is_settled(self) -> bool:
        return self.payment_status in self.SETTLED_STATUSES

    def settled_status(self) -> str:
        """Status this order moves to once PhonePe confirms the online payment."""
        if self.is_cash_on_delivery:
            return self.PaymentStatus.PENDING_UPFRONT
        return self.PaymentStatus.COMPLETED

    @property
    def map_coordinates(self) -> Optional[tuple]:
        """(lat, lng) from a GeoJSON point stored in the address, if present."""
        location = (self.address or {}).get("location") or {}
        coordinates = location.get("coordinates") or []
        if len(coordinates) != 2:
            return None
        lng, lat = coordinates
        return lat, lng


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        Product, on_delete=models.SET_NULL, null=True, blank=True, related_name="order_items"
    )
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    image = models.URLField(max_length=500, blank=True)
    stock_adjusted = models.BooleanField(default=False)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.name} x{self.quantity}"

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class OrderAddOn(models.Model):
    """Optional extras (balloons, candles, …) booked with an order."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="add_ons")
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2)

    class Meta:
        ordering = ["id"]
        verbose_name = "Order add-on"

    def __str__(self):
        return self.name


class Commission(models.Model):
    """Commission earned by a seller for a referred, paid order."""

    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name="commission")
    seller = models.ForeignKey(Seller, on_delete=models.PROTECT, related_name="commissions")
    base_amount = models.DecimalField(max_digits=10, decimal_places=2)
    commission_rate = models.DecimalField(max_digits=5, decimal_places=4)
    commission_amount = models.DecimalField(max_digits=10, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.seller} – {self.commission_amount} ({self.order.custom_order_id})"
