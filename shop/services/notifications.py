"""
Order confirmation emails.

The confirmation mail is best-effort: it is sent after the payment status
is committed and a delivery problem is logged, never raised. A per-order
claim on `Order.confirmation_sent_at` keeps duplicate settlement signals
from mailing the customer twice; the claim is released if sending fails
so the mail can be re-sent later.

By default the mail goes out from a daemon thread started once the
surrounding transaction commits, so settlement responses never wait on
SMTP. `ORDER_EMAIL_BACKGROUND=False` sends inline instead.
"""

import logging
import threading
from zoneinfo import ZoneInfo

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.db import connection, transaction
from django.template.loader import render_to_string
from django.utils import dateformat, timezone

from shop.models import Order

logger = logging.getLogger(__name__)

CONFIRMATION_SUBJECT = "🎉 Let's Get this Party Started! Your Order is Confirmed!"


class OrderNotificationSender:
    def __init__(self, background: bool = None) -> None:
        self._background = background

    @property
    def background(self) -> bool:
        if self._background is not None:
            return self._background
        return getattr(settings, "ORDER_EMAIL_BACKGROUND", True)

    def send(self, order: Order) -> bool:
        """
        Send the confirmation email for `order` once.

        Returns:
            True if a send was started, False if it was already sent or failed
        """
        try:
            claimed = Order.objects.filter(
                pk=order.pk, confirmation_sent_at__isnull=True
            ).update(confirmation_sent_at=timezone.now())
        except Exception:
            logger.exception("Could not claim confirmation email for %s", order.custom_order_id)
            return False

        if not claimed:
            logger.info("Confirmation email for %s already sent", order.custom_order_id)
            return False

        if self.background:
            transaction.on_commit(lambda: self._start_thread(order))
            return True
        return self._deliver(order)

    def _start_thread(self, order: Order) -> None:
        threading.Thread(target=self._deliver_in_thread, args=(order,), daemon=True).start()

    def _deliver_in_thread(self, order: Order) -> bool:
        try:
            return self._deliver(order)
        finally:
            # Django only closes connections of request threads.
            connection.close()

    def _deliver(self, order: Order) -> bool:
        try:
            message = self.build_message(order)
            message.send(fail_silently=False)
        except Exception:
            logger.exception("Error sending order confirmation email to %s", order.email)
            Order.objects.filter(pk=order.pk).update(confirmation_sent_at=None)
            return False

        logger.info("Order confirmation email sent to %s", order.email)
        return True

    def build_message(self, order: Order) -> EmailMultiAlternatives:
        context = self.get_context(order)
        text_body = render_to_string("shop/emails/order_confirmation.txt", context)
        html_body = render_to_string("shop/emails/order_confirmation.html", context)

        sender_name = getattr(settings, "ORDER_EMAIL_SENDER_NAME", "Decoryy")
        message = EmailMultiAlternatives(
            subject=CONFIRMATION_SUBJECT,
            body=text_body,
            from_email=f'"{sender_name}" <{settings.DEFAULT_FROM_EMAIL}>',
            to=[order.email],
        )
        message.attach_alternative(html_body, "text/html")
        return message

    def get_context(self, order: Order) -> dict:
        scheduled = None
        if order.scheduled_delivery:
            tz = ZoneInfo(getattr(settings, "ORDER_EMAIL_TIMEZONE", "Asia/Kolkata"))
            scheduled = dateformat.format(
                timezone.localtime(order.scheduled_delivery, tz), "l, j F Y, g:i A"
            )

        map_link = None
        if order.map_coordinates:
            lat, lng = order.map_coordinates
            map_link = f"https://www.google.com/maps?q={lat},{lng}"

        return {
            "order": order,
            "items": list(order.items.all()),
            "add_ons": list(order.add_ons.all()),
            "address": order.address or {},
            "map_link": map_link,
            "scheduled_delivery": scheduled,
            "sender_name": getattr(settings, "ORDER_EMAIL_SENDER_NAME", "Decoryy"),
        }
