from rest_framework import serializers
from .models import Order, OrderAddOn, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ["id", "product", "name", "price", "quantity", "image", "line_total"]


class OrderAddOnSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderAddOn
        fields = ["id", "name", "price"]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    add_ons = OrderAddOnSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "custom_order_id",
            "phonepe_merchant_order_id",
            "phonepe_order_id",
            "transaction_id",
            "customer_name",
            "email",
            "phone",
            "address",
            "payment_method",
            "payment_status",
            "total_amount",
            "upfront_amount",
            "remaining_amount",
            "seller_token",
            "coupon_code",
            "scheduled_delivery",
            "items",
            "add_ons",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
