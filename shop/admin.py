from django.contrib import admin
from django.utils.html import format_html
from .models import Commission, Order, OrderAddOn, OrderCounter, OrderItem, Product, Seller


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ["stock_adjusted"]


class OrderAddOnInline(admin.TabularInline):
    model = OrderAddOn
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Orders with their PhonePe identifiers. Payment fields are read-only:
    status changes only come from the settlement reconciler.
    """

    list_display = [
        "custom_order_id",
        "customer_name",
        "email",
        "payment_method",
        "status_indicator",
        "total_amount",
        "created_at",
    ]
    list_filter = ["payment_status", "payment_method", ("created_at", admin.DateFieldListFilter)]
    search_fields = [
        "custom_order_id",
        "phonepe_merchant_order_id",
        "phonepe_order_id",
        "transaction_id",
        "email",
        "phone",
    ]
    readonly_fields = [
        "custom_order_id",
        "phonepe_merchant_order_id",
        "phonepe_order_id",
        "transaction_id",
        "payment_status",
        "confirmation_sent_at",
        "created_at",
        "updated_at",
    ]
    inlines = [OrderItemInline, OrderAddOnInline]
    ordering = ["-created_at"]
    list_per_page = 50

    STATUS_COLORS = {
        Order.PaymentStatus.COMPLETED: "green",
        Order.PaymentStatus.PENDING_UPFRONT: "orange",
        Order.PaymentStatus.PENDING: "gray",
        Order.PaymentStatus.FAILED: "red",
    }

    def status_indicator(self, obj):
        color = self.STATUS_COLORS.get(obj.payment_status, "black")
        return format_html('<span style="color: {};">{}</span>', color, obj.get_payment_status_display())
    status_indicator.short_description = "Payment status"


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
    list_display = ["order", "seller", "base_amount", "commission_rate", "commission_amount", "created_at"]
    search_fields = ["order__custom_order_id", "seller__business_name", "seller__seller_token"]
    readonly_fields = ["order", "seller", "base_amount", "commission_rate", "commission_amount", "created_at"]


@admin.register(Seller)
class SellerAdmin(admin.ModelAdmin):
    list_display = ["business_name", "email", "seller_token", "approved", "blocked", "created_at"]
    list_filter = ["approved", "blocked"]
    search_fields = ["business_name", "email", "seller_token"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "price", "stock", "in_stock", "updated_at"]
    list_filter = ["in_stock"]
    search_fields = ["name"]


@admin.register(OrderCounter)
class OrderCounterAdmin(admin.ModelAdmin):
    list_display = ["name", "seq"]
