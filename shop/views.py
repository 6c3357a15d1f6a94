"""
Order lookup for the storefront: a customer's order history by email and
a single order by its human-readable id (used on the payment status page).
"""

from rest_framework import generics, permissions, status
from rest_framework.response import Response

from .models import Order
from .serializers import OrderSerializer


class OrderListView(generics.ListAPIView):
    serializer_class = OrderSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        email = self.request.query_params.get("email", "")
        return Order.objects.for_email(email).prefetch_related("items", "add_ons").order_by("-created_at")

    def list(self, request, *args, **kwargs):
        if not request.query_params.get("email"):
            return Response({"detail": "email is required."}, status=status.HTTP_400_BAD_REQUEST)
        return super().list(request, *args, **kwargs)


class OrderDetailView(generics.RetrieveAPIView):
    serializer_class = OrderSerializer
    permission_classes = [permissions.AllowAny]
    queryset = Order.objects.prefetch_related("items", "add_ons")
    lookup_field = "custom_order_id"
