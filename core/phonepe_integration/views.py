"""
PhonePe Integration Views (core.phonepe_integration)
====================================================

REST endpoints for PhonePe Standard Checkout. Every channel that learns
about a payment outcome (webhook, browser callback, status poll) hands it
to `shop.services.settlement.SettlementReconciler`; no view writes order
state itself.

Endpoints
---------

1. PhonePeCheckoutView
   - URL: /api/payments/phonepe/checkout/
   - Method: POST
   - Auth: None
   - Purpose:
       Creates a pending order and a PhonePe hosted checkout, returns the
       redirect URL for the storefront.

2. PhonePeWebhookView
   - URL: /api/payments/phonepe/webhook/
   - Method: POST
   - Auth: `Authorization: hex(SHA256(username:password))`
   - Purpose:
       Server-to-server settlement notification from PhonePe.

3. PhonePeCallbackView
   - URL: /api/payments/phonepe/callback/
   - Method: POST
   - Body: {"merchantOrderId": "MT...", "orderId": "...", "status": "..."}
   - Purpose:
       Browser return after checkout. The reported status is ignored and
       re-verified with PhonePe.

4. PhonePeStatusView
   - URL: /api/payments/phonepe/status/<order_id>/
   - Method: GET
   - Purpose:
       Status poll for the payment status page. Settles a pending order
       when PhonePe reports it completed.

5. PhonePeRefundView / PhonePeRefundStatusView
   - URL: /api/payments/phonepe/refund/ (POST)
          /api/payments/phonepe/refund/<merchant_refund_id>/status/ (GET)
   - Auth: Staff only
   - Purpose:
       Issue a refund against a merchant order and query its progress.

Author: Decoryy Development Team
Version: 1.0.0
"""

import logging

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from shop.models import Order
from shop.serializers import OrderSerializer
from shop.services.checkout import CheckoutService
from shop.services.settlement import PaymentOutcome, SettlementReconciler

from .client import STATE_COMPLETED, get_phonepe_client, normalize_state
from .exceptions import (
    AuthError,
    ConfigurationError,
    GatewayError,
    GatewayTimeout,
    NotFoundError,
    PaymentGatewayException,
)
from .serializers import CallbackSerializer, CheckoutRequestSerializer, RefundRequestSerializer
from .webhooks import EVENT_ORDER_COMPLETED, EVENT_ORDER_FAILED, verify_webhook_authorization

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("customerName", "email", "phone", "address")


def _error_response(exc: PaymentGatewayException, message=None, status_code=None, **extra):
    body = {"success": False, "message": message or exc.message}
    if exc.error_code:
        body["code"] = exc.error_code
    body.update(extra)
    return Response(body, status=status_code or exc.status_code)


class PhonePeCheckoutView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        service = CheckoutService(client=get_phonepe_client())
        try:
            service.check_configuration()
        except ConfigurationError as exc:
            return _error_response(exc)

        serializer = CheckoutRequestSerializer(data=request.data)
        if not serializer.is_valid():
            errors = serializer.errors
            if "amount" in errors:
                message = "Invalid amount provided"
            elif any(name in errors for name in CUSTOMER_FIELDS):
                message = "Customer details are required"
            else:
                message = "Invalid checkout request"
            return Response(
                {"success": False, "message": message, "errors": errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            result = service.initiate(serializer.validated_data)
        except ConfigurationError as exc:
            return _error_response(exc)
        except Exception:
            logger.exception("[checkout] Unexpected error while creating PhonePe order")
            return Response(
                {"success": False, "message": "Failed to create PhonePe order"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        order_data = OrderSerializer(result.order).data
        if not result.success:
            return Response(
                {
                    "success": False,
                    "message": result.error.message,
                    "code": result.error.error_code,
                    "data": result.error.details or None,
                    "order": order_data,
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response(
            {
                "success": True,
                "redirectUrl": result.session.redirect_url,
                "orderId": result.session.phonepe_order_id,
                "merchantOrderId": result.order.phonepe_merchant_order_id,
                "state": result.session.state,
                "order": order_data,
            },
            status=status.HTTP_200_OK,
        )


class PhonePeWebhookView(APIView):
    # The Authorization header carries PhonePe's digest, not a JWT.
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        logger.info("[webhook] Received PhonePe webhook")
        try:
            verify_webhook_authorization(request.headers.get("Authorization"))
        except PaymentGatewayException as exc:
            return Response({"success": False, "message": exc.message}, status=exc.status_code)

        data = request.data if hasattr(request.data, "get") else {}
        event = data.get("event")
        payload = data.get("payload")
        if not event or not isinstance(payload, dict):
            logger.warning("[webhook] Invalid webhook payload")
            return Response(
                {"success": False, "message": "Invalid webhook payload"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        logger.info("[webhook] Event: %s", event)
        try:
            if event == EVENT_ORDER_COMPLETED:
                return self.handle_completed(payload)
            if event == EVENT_ORDER_FAILED:
                return self.handle_failed(payload)
        except Exception:
            logger.exception("[webhook] Error processing %s", event)
            return Response(
                {"success": False, "message": "Webhook processing failed"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        logger.info("[webhook] Unhandled event type: %s", event)
        return Response({"success": True, "message": "Event ignored"}, status=status.HTTP_200_OK)

    @staticmethod
    def _transaction_id(payload):
        if payload.get("transactionId"):
            return payload["transactionId"]
        details = payload.get("paymentDetails") or []
        if details and isinstance(details[0], dict):
            return details[0].get("transactionId")
        return None

    def _find_order(self, payload):
        return Order.objects.find_for_payment(
            payload.get("merchantOrderId"),
            payload.get("orderId"),
            self._transaction_id(payload),
        )

    def handle_completed(self, payload):
        state = payload.get("state")
        if normalize_state(state) != STATE_COMPLETED:
            logger.info("[webhook] Ignoring completed event with state %s", state)
            return Response({"success": True, "message": "State ignored"}, status=status.HTTP_200_OK)

        order = self._find_order(payload)
        if order is None:
            logger.error("[webhook] Order not found for %s", payload.get("merchantOrderId"))
            return Response({"success": False, "message": "Order not found"}, status=status.HTTP_404_NOT_FOUND)

        outcome = PaymentOutcome(
            state=state,
            transaction_id=self._transaction_id(payload) or payload.get("orderId"),
            source="webhook",
        )
        result = SettlementReconciler().reconcile(order, outcome)
        if result.already_processed:
            return Response({"success": True, "message": "Already processed"}, status=status.HTTP_200_OK)
        if not result.applied:
            return Response(
                {"success": True, "message": f"Order is {order.payment_status}, not updated"},
                status=status.HTTP_200_OK,
            )
        return Response({"success": True, "message": "Webhook processed successfully"}, status=status.HTTP_200_OK)

    def handle_failed(self, payload):
        order = self._find_order(payload)
        if order is None:
            logger.error("[webhook] Order not found for failed event %s", payload.get("merchantOrderId"))
            return Response({"success": False, "message": "Order not found"}, status=status.HTTP_404_NOT_FOUND)

        SettlementReconciler().mark_failed(order, reason=payload.get("errorCode") or "webhook")
        return Response({"success": True, "message": "Payment failure recorded"}, status=status.HTTP_200_OK)


class PhonePeCallbackView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = CallbackSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"success": False, "message": "Merchant order ID is required", "errors": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        merchant_order_id = serializer.validated_data["merchant_order_id"]
        reported = serializer.validated_data.get("status")
        logger.info("[callback] %s returned with reported status %s", merchant_order_id, reported or "-")

        order = Order.objects.find_for_payment(merchant_order_id, serializer.validated_data.get("order_id"))
        if order is None:
            return Response({"success": False, "message": "Order not found"}, status=status.HTTP_404_NOT_FOUND)

        try:
            payment = get_phonepe_client().query_status(order.phonepe_merchant_order_id)
        except PaymentGatewayException as exc:
            logger.error("[callback] Verification failed for %s: %s", merchant_order_id, exc.message)
            return _error_response(exc, message="Failed to verify payment with PhonePe")
        except Exception:
            logger.exception("[callback] Unexpected error verifying %s", merchant_order_id)
            return Response(
                {"success": False, "message": "Failed to verify payment with PhonePe"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        SettlementReconciler().reconcile(order, PaymentOutcome.from_status(payment, "callback"))

        body = {
            "orderId": order.phonepe_order_id or payment.raw.get("orderId"),
            "merchantOrderId": order.phonepe_merchant_order_id,
            "customOrderId": order.custom_order_id,
            "status": payment.state,
            "paymentStatus": order.payment_status,
        }
        if payment.is_completed:
            body.update(success=True, message="Payment completed successfully")
        elif payment.is_failed:
            body.update(
                success=False,
                message="Payment failed",
                errorCode=payment.error_code,
                detailedErrorCode=payment.detailed_error_code,
            )
        else:
            body.update(success=True, message="Payment is pending")
        return Response(body, status=status.HTTP_200_OK)


class PhonePeStatusView(APIView):
    permission_classes = [AllowAny]

    ERROR_MESSAGES = {
        NotFoundError: "Order not found",
        AuthError: "Authentication failed",
        GatewayTimeout: "Request timeout",
    }

    def get(self, request, order_id):
        order = Order.objects.find_for_payment(order_id, order_id)
        query_id = order.phonepe_merchant_order_id if order else order_id

        try:
            payment = get_phonepe_client().query_status(query_id)
        except PaymentGatewayException as exc:
            logger.error("[status] Status check failed for %s: %s", order_id, exc.message)
            return self._error(exc)

        if payment.is_completed and order is not None and order.payment_status == Order.PaymentStatus.PENDING:
            try:
                SettlementReconciler().reconcile(order, PaymentOutcome.from_status(payment, "poll"))
            except Exception:
                logger.exception("[status] Could not settle %s from status poll", order.custom_order_id)

        raw = payment.raw
        meta = raw.get("metaInfo") or {}
        data = {
            "orderId": raw.get("orderId"),
            "merchantOrderId": meta.get("merchantOrderId") or (order.phonepe_merchant_order_id if order else None),
            "state": raw.get("state"),
            "amount": raw.get("amount"),
            "expireAt": raw.get("expireAt"),
            "paymentDetails": raw.get("paymentDetails") or [],
            "errorCode": raw.get("errorCode"),
            "detailedErrorCode": raw.get("detailedErrorCode"),
            "errorContext": raw.get("errorContext"),
        }
        return Response(
            {
                "success": payment.state == STATE_COMPLETED,
                "data": data,
                "message": f"Payment status: {raw.get('state')}",
            },
            status=status.HTTP_200_OK,
        )

    def _error(self, exc):
        for exc_class, message in self.ERROR_MESSAGES.items():
            if isinstance(exc, exc_class):
                return _error_response(exc, message=message)
        if isinstance(exc, GatewayError):
            return _error_response(exc, data=exc.details.get("data"))
        return _error_response(exc)


class PhonePeRefundView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request):
        serializer = RefundRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"success": False, "message": "Refund details are required", "errors": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        data = serializer.validated_data
        try:
            result = get_phonepe_client().refund(
                data["merchant_refund_id"], data["original_merchant_order_id"], data["amount"]
            )
        except GatewayError as exc:
            return _error_response(exc, status_code=status.HTTP_400_BAD_REQUEST)
        except PaymentGatewayException as exc:
            logger.error("Refund %s failed: %s", data["merchant_refund_id"], exc.message)
            return _error_response(exc, message="Failed to process refund")

        return Response({"success": True, "data": result.data}, status=status.HTTP_200_OK)


class PhonePeRefundStatusView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request, merchant_refund_id):
        try:
            result = get_phonepe_client().refund_status(merchant_refund_id)
        except GatewayError as exc:
            return _error_response(exc, status_code=status.HTTP_400_BAD_REQUEST)
        except PaymentGatewayException as exc:
            return _error_response(exc, message="Failed to get refund status")

        return Response({"success": True, "data": result.data}, status=status.HTTP_200_OK)
