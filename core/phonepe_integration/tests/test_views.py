from decimal import Decimal
from unittest import mock

from django.contrib.auth.models import User
from django.core import mail
from django.test import override_settings
from rest_framework.test import APITestCase

from core.phonepe_integration.client import CheckoutSession, RefundResult
from core.phonepe_integration.exceptions import (
    AuthError,
    ConfigurationError,
    GatewayError,
    GatewayTimeout,
    NotFoundError,
)
from shop.models import Order
from shop.tests.helpers import PHONEPE_TEST_SETTINGS, make_order, make_product, mock_client, payment_status

CLIENT_PATH = "core.phonepe_integration.views.get_phonepe_client"


class PatchedClientMixin:
    def use_client(self, **methods):
        client = mock_client(**methods)
        patcher = mock.patch(CLIENT_PATH, return_value=client)
        patcher.start()
        self.addCleanup(patcher.stop)
        return client


def checkout_body(**overrides):
    body = {
        "amount": "1999.00",
        "finalTotal": "1999.00",
        "customerName": "Asha Verma",
        "email": "asha@example.com",
        "phone": "9876543210",
        "address": {"street": "12 MG Road", "city": "Bengaluru", "pincode": "560001"},
        "items": [{"productId": None, "name": "Balloon Arch", "price": "1500.00", "quantity": 1}],
        "addOns": [{"name": "Photo Booth", "price": "499.00"}],
        "paymentMethod": "online",
    }
    body.update(overrides)
    return body


@override_settings(**PHONEPE_TEST_SETTINGS)
class PhonePeCheckoutViewTests(PatchedClientMixin, APITestCase):
    url = "/api/payments/phonepe/checkout/"

    def test_checkout_returns_redirect(self):
        self.use_client(
            create_checkout=CheckoutSession(
                redirect_url="https://mercury.test/pay", phonepe_order_id="OMO123", state="PENDING"
            )
        )

        response = self.client.post(self.url, checkout_body(), format="json")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["redirectUrl"], "https://mercury.test/pay")
        self.assertEqual(body["orderId"], "OMO123")
        order = Order.objects.get()
        self.assertEqual(body["merchantOrderId"], order.phonepe_merchant_order_id)
        self.assertEqual(body["order"]["custom_order_id"], order.custom_order_id)
        self.assertEqual(order.address["country"], "India")
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)

    def test_cod_alias_and_street_address(self):
        product = make_product()
        self.use_client(
            create_checkout=CheckoutSession(redirect_url="https://mercury.test/pay", phonepe_order_id="OMO1", state=None)
        )
        body = checkout_body(
            amount="300.00",
            paymentMethod="cod",
            upfrontAmount="300.00",
            remainingAmount="1699.00",
            address="12 MG Road",
            city="Bengaluru",
            pincode="560001",
            items=[{"productId": str(product.pk), "name": "Balloon Arch", "price": "1500.00", "quantity": 1}],
        )

        response = self.client.post(self.url, body, format="json")

        self.assertEqual(response.status_code, 200)
        order = Order.objects.get()
        self.assertEqual(order.payment_method, Order.PaymentMethod.CASH_ON_DELIVERY)
        self.assertEqual(order.upfront_amount, Decimal("300.00"))
        self.assertEqual(order.total_amount, Decimal("1999.00"))
        self.assertEqual(
            order.address, {"street": "12 MG Road", "city": "Bengaluru", "pincode": "560001", "country": "India"}
        )
        self.assertEqual(order.items.get().product, product)

    def test_invalid_amount(self):
        client = self.use_client()

        response = self.client.post(self.url, checkout_body(amount="0"), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Invalid amount provided")
        self.assertFalse(Order.objects.exists())
        client.create_checkout.assert_not_called()

    def test_missing_customer_details(self):
        self.use_client()
        body = checkout_body()
        del body["customerName"]

        response = self.client.post(self.url, body, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Customer details are required")

    @override_settings(PHONEPE_CLIENT_ID=None)
    def test_missing_configuration(self):
        self.use_client()

        response = self.client.post(self.url, checkout_body(), format="json")

        self.assertEqual(response.status_code, 500)
        self.assertFalse(Order.objects.exists())

    def test_gateway_failure_marks_order_failed(self):
        self.use_client(create_checkout=GatewayError("Merchant not enabled", status_code=400))

        response = self.client.post(self.url, checkout_body(), format="json")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["message"], "Merchant not enabled")
        self.assertEqual(Order.objects.get().payment_status, Order.PaymentStatus.FAILED)


@override_settings(**PHONEPE_TEST_SETTINGS)
class PhonePeCallbackViewTests(PatchedClientMixin, APITestCase):
    url = "/api/payments/phonepe/callback/"

    def test_cod_order_moves_to_pending_upfront(self):
        order = make_order(
            merchant_order_id="MT2",
            payment_method=Order.PaymentMethod.CASH_ON_DELIVERY,
            upfront_amount=Decimal("300.00"),
        )
        client = self.use_client(query_status=payment_status("COMPLETED"))

        response = self.client.post(self.url, {"merchantOrderId": "MT2", "status": "SUCCESS"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["success"])
        client.query_status.assert_called_once_with("MT2")
        order.refresh_from_db()
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING_UPFRONT)
        self.assertEqual(len(mail.outbox), 1)

    def test_reported_status_is_not_trusted(self):
        order = make_order()
        self.use_client(
            query_status=payment_status(
                "FAILED", transaction_id=None, errorCode="PAYMENT_DECLINED", detailedErrorCode="ZM"
            )
        )

        response = self.client.post(
            self.url, {"merchantOrderId": order.phonepe_merchant_order_id, "status": "COMPLETED"}, format="json"
        )

        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["errorCode"], "PAYMENT_DECLINED")
        self.assertEqual(body["detailedErrorCode"], "ZM")
        order.refresh_from_db()
        self.assertEqual(order.payment_status, Order.PaymentStatus.FAILED)
        self.assertEqual(len(mail.outbox), 0)

    def test_pending_state(self):
        order = make_order()
        self.use_client(query_status=payment_status("PENDING", transaction_id=None))

        response = self.client.post(self.url, {"merchantOrderId": order.phonepe_merchant_order_id}, format="json")

        self.assertEqual(response.json()["message"], "Payment is pending")
        order.refresh_from_db()
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)

    def test_merchant_order_id_required(self):
        self.use_client()
        response = self.client.post(self.url, {"status": "COMPLETED"}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_unknown_order(self):
        client = self.use_client()

        response = self.client.post(self.url, {"merchantOrderId": "MT-UNKNOWN"}, format="json")

        self.assertEqual(response.status_code, 404)
        client.query_status.assert_not_called()

    def test_gateway_timeout(self):
        order = make_order()
        self.use_client(query_status=GatewayTimeout())

        response = self.client.post(self.url, {"merchantOrderId": order.phonepe_merchant_order_id}, format="json")

        self.assertEqual(response.status_code, 408)
        order.refresh_from_db()
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)


@override_settings(**PHONEPE_TEST_SETTINGS)
class PhonePeStatusViewTests(PatchedClientMixin, APITestCase):
    def url(self, order_id):
        return f"/api/payments/phonepe/status/{order_id}/"

    def test_completed_poll_settles_pending_order(self):
        product = make_product(stock=3)
        order = make_order(product=product)
        status = payment_status("COMPLETED", expireAt=1735732800000, metaInfo={"merchantOrderId": "ignored"})
        self.use_client(query_status=status)

        response = self.client.get(self.url(order.phonepe_merchant_order_id))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["state"], "COMPLETED")
        self.assertEqual(body["data"]["orderId"], "OMO2401011234")
        self.assertEqual(body["data"]["expireAt"], 1735732800000)
        self.assertEqual(body["data"]["paymentDetails"][0]["transactionId"], "T2401011234")
        order.refresh_from_db()
        product.refresh_from_db()
        self.assertEqual(order.payment_status, Order.PaymentStatus.COMPLETED)
        self.assertEqual(product.stock, 2)

    def test_poll_by_processor_order_id(self):
        order = make_order(phonepe_order_id="OMO2401011234")
        client = self.use_client(query_status=payment_status("PENDING", transaction_id=None))

        response = self.client.get(self.url("OMO2401011234"))

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["success"])
        client.query_status.assert_called_once_with(order.phonepe_merchant_order_id)

    def test_failed_poll_leaves_order_alone(self):
        order = make_order()
        self.use_client(query_status=payment_status("FAILED", transaction_id=None))

        self.client.get(self.url(order.phonepe_merchant_order_id))

        order.refresh_from_db()
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)

    def test_settled_order_is_not_reapplied(self):
        order = make_order(payment_status=Order.PaymentStatus.COMPLETED)
        self.use_client(query_status=payment_status("COMPLETED"))

        response = self.client.get(self.url(order.phonepe_merchant_order_id))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(mail.outbox), 0)

    def test_error_mapping(self):
        cases = [
            (NotFoundError("missing"), 404, "Order not found"),
            (AuthError("bad token"), 401, "Authentication failed"),
            (GatewayTimeout(), 408, "Request timeout"),
            (ConfigurationError("PhonePe OAuth credentials not configured"), 500, None),
            (GatewayError("Invalid merchantOrderId", status_code=400, error_code="BAD_REQUEST"), 400, None),
        ]
        for exc, status_code, message in cases:
            with self.subTest(exc=type(exc).__name__):
                self.use_client(query_status=exc)

                response = self.client.get(self.url("MT-UNKNOWN"))

                self.assertEqual(response.status_code, status_code)
                self.assertEqual(response.json()["message"], message or exc.message)


@override_settings(**PHONEPE_TEST_SETTINGS)
class PhonePeRefundViewTests(PatchedClientMixin, APITestCase):
    url = "/api/payments/phonepe/refund/"

    def setUp(self):
        self.staff = User.objects.create_user(username="ops", password="ops-password", is_staff=True)

    def refund_body(self):
        return {"merchantRefundId": "RF1", "originalMerchantOrderId": "MT1", "amount": "100.00"}

    def test_requires_staff(self):
        self.use_client()
        response = self.client.post(self.url, self.refund_body(), format="json")
        self.assertIn(response.status_code, (401, 403))

    def test_refund(self):
        client = self.use_client(refund=RefundResult(success=True, data={"refundId": "R1", "state": "PENDING"}))
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(self.url, self.refund_body(), format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "data": {"refundId": "R1", "state": "PENDING"}})
        client.refund.assert_called_once_with("RF1", "MT1", Decimal("100.00"))

    def test_missing_fields(self):
        self.use_client()
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(self.url, {"merchantRefundId": "RF1"}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_rejected_refund(self):
        self.use_client(refund=GatewayError("Refund amount exceeds", status_code=400))
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(self.url, self.refund_body(), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Refund amount exceeds")

    def test_refund_status(self):
        self.use_client(refund_status=RefundResult(success=True, data={"state": "COMPLETED"}))
        self.client.force_authenticate(user=self.staff)

        response = self.client.get("/api/payments/phonepe/refund/RF1/status/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["state"], "COMPLETED")
