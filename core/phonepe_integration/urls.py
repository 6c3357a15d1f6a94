from django.urls import path
from .views import (
    PhonePeCallbackView,
    PhonePeCheckoutView,
    PhonePeRefundStatusView,
    PhonePeRefundView,
    PhonePeStatusView,
    PhonePeWebhookView,
)

app_name = "phonepe_integration"

urlpatterns = [
    path("phonepe/checkout/", PhonePeCheckoutView.as_view(), name="phonepe-checkout"),
    path("phonepe/webhook/", PhonePeWebhookView.as_view(), name="phonepe-webhook"),
    path("phonepe/callback/", PhonePeCallbackView.as_view(), name="phonepe-callback"),
    path("phonepe/status/<str:order_id>/", PhonePeStatusView.as_view(), name="phonepe-status"),
    path("phonepe/refund/", PhonePeRefundView.as_view(), name="phonepe-refund"),
    path(
        "phonepe/refund/<str:merchant_refund_id>/status/",
        PhonePeRefundStatusView.as_view(),
        name="phonepe-refund-status",
    ),
]
