from decimal import Decimal
from unittest import mock

from core.phonepe_integration.client import PaymentStatus, normalize_state
from shop.models import Order, OrderAddOn, OrderItem, Product, Seller

PHONEPE_TEST_SETTINGS = {
    "PHONEPE_CLIENT_ID": "TEST_CLIENT",
    "PHONEPE_CLIENT_SECRET": "test-secret",
    "PHONEPE_WEBHOOK_USERNAME": "hook-user",
    "PHONEPE_WEBHOOK_PASSWORD": "hook-pass",
    "FRONTEND_URL": "https://shop.example.com",
    "BACKEND_URL": "https://api.example.com",
    "ORDER_EMAIL_BACKGROUND": False,
}


def make_product(name="Balloon Arch", stock=3, price="1500.00"):
    return Product.objects.create(name=name, stock=stock, price=Decimal(price), in_stock=stock > 0)


def make_seller(token="SELLER42", **kwargs):
    defaults = {"business_name": "Party Planners", "email": f"{token.lower()}@example.com", "approved": True}
    defaults.update(kwargs)
    return Seller.objects.create(seller_token=token, **defaults)


def make_order(
    custom_order_id="decorationcelebration1",
    merchant_order_id="MT1700000000000abc123",
    payment_method=Order.PaymentMethod.ONLINE,
    payment_status=Order.PaymentStatus.PENDING,
    total="1500.00",
    product=None,
    quantity=1,
    **kwargs,
):
    fields = {
        "customer_name": "Asha Verma",
        "email": "asha@example.com",
        "phone": "9876543210",
        "address": {"street": "12 MG Road", "city": "Bengaluru", "pincode": "560001", "country": "India"},
    }
    fields.update(kwargs)
    order = Order.objects.create(
        custom_order_id=custom_order_id,
        phonepe_merchant_order_id=merchant_order_id,
        payment_method=payment_method,
        payment_status=payment_status,
        total_amount=Decimal(total),
        **fields,
    )
    OrderItem.objects.create(
        order=order,
        product=product,
        name=product.name if product else "Custom Decor",
        price=product.price if product else Decimal(total),
        quantity=quantity,
    )
    return order


def add_add_on(order, name="Photo Booth", price="499.00"):
    return OrderAddOn.objects.create(order=order, name=name, price=Decimal(price))


def payment_status(state="COMPLETED", transaction_id="T2401011234", **raw):
    body = {"orderId": "OMO2401011234", "state": state, "amount": 150000}
    if transaction_id:
        body["paymentDetails"] = [{"transactionId": transaction_id, "state": state}]
    body.update(raw)
    return PaymentStatus(
        state=normalize_state(state),
        amount=body.get("amount"),
        error_code=body.get("errorCode"),
        detailed_error_code=body.get("detailedErrorCode"),
        transaction_id=transaction_id,
        raw=body,
    )


def mock_client(**methods):
    client = mock.Mock()
    for name, value in methods.items():
        if isinstance(value, Exception):
            getattr(client, name).side_effect = value
        else:
            getattr(client, name).return_value = value
    return client
