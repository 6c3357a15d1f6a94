from decimal import Decimal

from rest_framework import serializers

from shop.models import Order, Product


class CheckoutItemSerializer(serializers.Serializer):
    productId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    name = serializers.CharField(max_length=255)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"))
    quantity = serializers.IntegerField(min_value=1)
    image = serializers.CharField(required=False, allow_null=True, allow_blank=True, max_length=500)

    def validate(self, attrs):
        # Unknown product ids are kept as free-text lines without stock tracking.
        product_id = attrs.pop("productId", None)
        product = None
        if product_id and str(product_id).isdigit():
            product = Product.objects.filter(pk=int(product_id)).first()
        attrs["product"] = product
        return attrs


class CheckoutAddOnSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"))


class CheckoutRequestSerializer(serializers.Serializer):
    """
    Checkout payload as the storefront sends it (camelCase). Validated data
    uses the model's snake_case names.
    """

    PAYMENT_METHOD_ALIASES = {
        "cod": Order.PaymentMethod.CASH_ON_DELIVERY,
        "cash-on-delivery": Order.PaymentMethod.CASH_ON_DELIVERY,
        "online": Order.PaymentMethod.ONLINE,
    }

    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    customerName = serializers.CharField(source="customer_name", max_length=255)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=30)
    address = serializers.JSONField()
    city = serializers.CharField(required=False, allow_blank=True, default="")
    pincode = serializers.CharField(required=False, allow_blank=True, default="")
    country = serializers.CharField(required=False, allow_blank=True, default="India")
    items = CheckoutItemSerializer(many=True, allow_empty=False)
    addOns = CheckoutAddOnSerializer(source="add_ons", many=True, required=False, default=list)
    finalTotal = serializers.DecimalField(
        source="final_total", max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    paymentMethod = serializers.CharField(source="payment_method", required=False, default="online")
    upfrontAmount = serializers.DecimalField(
        source="upfront_amount", max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    remainingAmount = serializers.DecimalField(
        source="remaining_amount", max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    sellerToken = serializers.CharField(source="seller_token", required=False, allow_blank=True, allow_null=True)
    couponCode = serializers.CharField(source="coupon_code", required=False, allow_blank=True, allow_null=True)
    scheduledDelivery = serializers.DateTimeField(source="scheduled_delivery", required=False, allow_null=True)

    def validate_paymentMethod(self, value):
        method = self.PAYMENT_METHOD_ALIASES.get(str(value).lower())
        if method is None:
            raise serializers.ValidationError("paymentMethod must be 'online' or 'cod'.")
        return method

    def validate(self, attrs):
        address = attrs["address"]
        city = attrs.pop("city", "")
        pincode = attrs.pop("pincode", "")
        country = attrs.pop("country", "") or "India"

        if isinstance(address, str):
            address = {"street": address, "city": city, "pincode": pincode, "country": country}
        elif isinstance(address, dict):
            address = {**address}
            address.setdefault("country", country)
        else:
            raise serializers.ValidationError({"address": "Address must be an object or a street string."})
        attrs["address"] = address
        return attrs


class CallbackSerializer(serializers.Serializer):
    merchantOrderId = serializers.CharField(source="merchant_order_id")
    orderId = serializers.CharField(source="order_id", required=False, allow_blank=True)
    # Reported by the browser; never trusted, the outcome is re-verified with PhonePe.
    status = serializers.CharField(required=False, allow_blank=True)


class RefundRequestSerializer(serializers.Serializer):
    merchantRefundId = serializers.CharField(source="merchant_refund_id", max_length=64)
    originalMerchantOrderId = serializers.CharField(source="original_merchant_order_id", max_length=64)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
