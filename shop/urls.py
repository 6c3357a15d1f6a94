from django.urls import path
from .views import OrderDetailView, OrderListView

app_name = "shop"

urlpatterns = [
    path("orders/", OrderListView.as_view(), name="order-list"),
    path("orders/<str:custom_order_id>/", OrderDetailView.as_view(), name="order-detail"),
]
