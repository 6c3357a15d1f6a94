"""
Reconcile Pending Orders Command - Decoryy

Re-checks pending online orders with PhonePe and settles those whose
webhook and browser callback never arrived. Meant to run from a cronjob.

Features:
- Only orders older than --older-than minutes (default 15) are checked
- --limit caps the number of gateway calls per run
- --dry-run reports PhonePe's state without changing any order

Author: Decoryy Development Team
Version: 1.0.0
"""

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from core.phonepe_integration.client import get_phonepe_client
from core.phonepe_integration.exceptions import PaymentGatewayException
from shop.models import Order
from shop.services.settlement import PaymentOutcome, SettlementReconciler


class Command(BaseCommand):
    """
    Usage:
        python manage.py reconcile_pending_orders
        python manage.py reconcile_pending_orders --older-than 30 --limit 100
        python manage.py reconcile_pending_orders --dry-run
    """

    help = "Query PhonePe for pending orders and apply the verified outcome"

    def add_arguments(self, parser):
        parser.add_argument(
            "--older-than",
            type=int,
            default=15,
            help="Only check orders created at least this many minutes ago",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=50,
            help="Maximum number of orders to check",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show PhonePe's state without updating orders",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        cutoff = timezone.now() - timedelta(minutes=options["older_than"])

        orders = list(
            Order.objects.pending()
            .filter(created_at__lte=cutoff, phonepe_merchant_order_id__isnull=False)
            .exclude(phonepe_merchant_order_id="")
            .prefetch_related("items", "add_ons")
            .order_by("created_at")[: options["limit"]]
        )

        if not orders:
            self.stdout.write(self.style.SUCCESS("✅ No pending orders to reconcile"))
            return

        client = get_phonepe_client()
        reconciler = SettlementReconciler()
        counts = {"settled": 0, "failed": 0, "pending": 0, "errors": 0}

        for order in orders:
            merchant_order_id = order.phonepe_merchant_order_id
            try:
                payment = client.query_status(merchant_order_id)
            except PaymentGatewayException as exc:
                counts["errors"] += 1
                self.stderr.write(f"❌ {order.custom_order_id} ({merchant_order_id}): {exc.message}")
                continue

            if dry_run:
                self.stdout.write(f"   {order.custom_order_id} ({merchant_order_id}): {payment.state}")
                continue

            try:
                result = reconciler.reconcile(order, PaymentOutcome.from_status(payment, "command"))
            except Exception as exc:
                counts["errors"] += 1
                self.stderr.write(f"❌ {order.custom_order_id}: {exc}")
                continue

            if result.applied and payment.is_completed:
                counts["settled"] += 1
            elif result.applied and payment.is_failed:
                counts["failed"] += 1
            else:
                counts["pending"] += 1
            self.stdout.write(f"   {order.custom_order_id}: {payment.state} -> {order.payment_status}")

        if dry_run:
            self.stdout.write(self.style.WARNING(f"🔍 DRY RUN: checked {len(orders)} orders, nothing changed"))
            return

        self.stdout.write(
            self.style.SUCCESS(
                f"✅ Checked {len(orders)} orders: {counts['settled']} settled, "
                f"{counts['failed']} failed, {counts['pending']} unchanged, {counts['errors']} errors"
            )
        )
