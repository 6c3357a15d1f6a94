"""
Payment Settlement Reconciler
=============================

The single place where a PhonePe payment outcome is applied to an order.
The webhook, the browser callback, the status poll and the
`reconcile_pending_orders` command all hand their verified outcome to
`SettlementReconciler.reconcile()`; none of them touch order state
themselves.

State machine
-------------
    pending ──COMPLETED (online)──▶ completed
    pending ──COMPLETED (COD)─────▶ pending_upfront
    pending ──FAILED──────────────▶ failed
    completed / pending_upfront ──any──▶ unchanged (duplicate delivery)
    failed ──COMPLETED────────────▶ rejected and logged

Ordering
--------
1. Idempotency guard on the loaded order.
2. Target status from the payment method.
3. Conditional UPDATE ... WHERE payment_status = 'pending'. This is the
   serialization point between racing channels; if no row changes another
   channel settled the order first and nothing else runs.
4. Commission entry (seller referral orders only).
5. Stock adjustment per item.
6. Confirmation email.

Steps 4-6 run only after the status is committed. Each one is wrapped by
`_run_step`, which logs and discards its failure: the money has already
moved at PhonePe, so bookkeeping problems must never undo the status.
Each step is also idempotent on its own (unique commission per order,
per-item stock claim, per-order email claim).

Author: Decoryy Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from django.utils import timezone

from core.phonepe_integration.client import (
    STATE_COMPLETED,
    STATE_FAILED,
    PaymentStatus,
    normalize_state,
)
from shop.models import Order

from .commission import CommissionLedger
from .inventory import StockAdjuster
from .notifications import OrderNotificationSender

logger = logging.getLogger(__name__)


@dataclass
class PaymentOutcome:
    """A payment result reported by one of the reconciliation channels."""

    state: str
    transaction_id: Optional[str] = None
    source: str = "unknown"
    error_code: Optional[str] = None

    def __post_init__(self):
        self.state = normalize_state(self.state)

    @classmethod
    def from_status(cls, status: PaymentStatus, source: str) -> "PaymentOutcome":
        return cls(
            state=status.state,
            transaction_id=status.transaction_id or status.raw.get("orderId"),
            source=source,
            error_code=status.error_code,
        )


@dataclass
class StepResult:
    name: str
    ok: bool
    detail: Any = None


@dataclass
class SettlementResult:
    order: Order
    applied: bool
    reason: str = ""
    steps: List[StepResult] = field(default_factory=list)

    @property
    def already_processed(self) -> bool:
        return self.reason == "already_settled"


class SettlementReconciler:
    """
    Applies payment outcomes to orders exactly once.

    Collaborators are injectable so tests can observe or break individual
    side effects:

        >>> reconciler = SettlementReconciler(notifier=FakeNotifier())
        >>> reconciler.apply(order, "T1").applied
        True
    """

    def __init__(
        self,
        commission_ledger: Optional[CommissionLedger] = None,
        stock_adjuster: Optional[StockAdjuster] = None,
        notifier: Optional[OrderNotificationSender] = None,
    ) -> None:
        self.commission_ledger = commission_ledger or CommissionLedger()
        self.stock_adjuster = stock_adjuster or StockAdjuster()
        self.notifier = notifier or OrderNotificationSender()

    def reconcile(self, order: Order, outcome: PaymentOutcome) -> SettlementResult:
        """Route a channel's outcome to the matching transition."""
        logger.info(
            "[settlement] %s reported %s for %s",
            outcome.source,
            outcome.state,
            order.custom_order_id,
        )
        if outcome.state == STATE_COMPLETED:
            return self.apply(order, outcome.transaction_id)
        if outcome.state == STATE_FAILED:
            changed = self.mark_failed(order, reason=outcome.error_code or outcome.source)
            return SettlementResult(order=order, applied=changed, reason="failed" if changed else "unchanged")
        return SettlementResult(order=order, applied=False, reason="pending")

    def apply(self, order: Order, transaction_id: Optional[str] = None) -> SettlementResult:
        """
        Mark `order` as paid and run the post-payment side effects.

        Returns:
            SettlementResult with `applied=False` when the order was already
            settled, had failed, or another channel won the race
        """
        if order.is_settled:
            logger.info("[settlement] %s already %s", order.custom_order_id, order.payment_status)
            return SettlementResult(order=order, applied=False, reason="already_settled")

        if order.payment_status != Order.PaymentStatus.PENDING:
            logger.warning(
                "[settlement] Rejected transition %s -> paid for %s",
                order.payment_status,
                order.custom_order_id,
            )
            return SettlementResult(order=order, applied=False, reason="invalid_transition")

        target = order.settled_status()
        transaction_id = transaction_id or order.phonepe_order_id or order.phonepe_merchant_order_id or ""

        if not self._commit_status(order, target, transaction_id):
            order.refresh_from_db()
            logger.info(
                "[settlement] %s was settled concurrently (now %s)",
                order.custom_order_id,
                order.payment_status,
            )
            reason = "already_settled" if order.is_settled else "invalid_transition"
            return SettlementResult(order=order, applied=False, reason=reason)

        logger.info("[settlement] Updated order %s status to %s", order.custom_order_id, target)

        steps = []
        if order.seller_token:
            steps.append(self._run_step("commission", self.commission_ledger.record, order))
        steps.append(self._run_step("stock", self.stock_adjuster.apply_order, order))
        steps.append(self._run_step("notification", self.notifier.send, order))

        return SettlementResult(order=order, applied=True, reason="settled", steps=steps)

    def mark_failed(self, order: Order, reason: str = "") -> bool:
        """
        Move a pending order to `failed`. Settled orders are never downgraded.

        Returns:
            True if this call changed the order's status
        """
        updated = Order.objects.filter(
            pk=order.pk, payment_status=Order.PaymentStatus.PENDING
        ).update(payment_status=Order.PaymentStatus.FAILED, updated_at=timezone.now())

        if updated:
            order.payment_status = Order.PaymentStatus.FAILED
            logger.info("[settlement] Order %s marked failed (%s)", order.custom_order_id, reason or "no reason")
            return True

        order.refresh_from_db(fields=["payment_status"])
        if order.is_settled:
            logger.warning(
                "[settlement] Ignoring failure for %s, already %s",
                order.custom_order_id,
                order.payment_status,
            )
        return False

    # ---------- internals ----------

    @staticmethod
    def _commit_status(order: Order, target: str, transaction_id: str) -> bool:
        now = timezone.now()
        updated = Order.objects.filter(
            pk=order.pk, payment_status=Order.PaymentStatus.PENDING
        ).update(payment_status=target, transaction_id=transaction_id, updated_at=now)
        if updated:
            order.payment_status = target
            order.transaction_id = transaction_id
            order.updated_at = now
        return bool(updated)

    @staticmethod
    def _run_step(name: str, func: Callable, order: Order) -> StepResult:
        try:
            detail = func(order)
        except Exception as exc:
            logger.exception("[settlement] %s step failed for %s", name, order.custom_order_id)
            return StepResult(name=name, ok=False, detail=str(exc))

        ok = getattr(detail, "ok", True) if detail is not None else True
        if not ok:
            logger.error("[settlement] %s step partially failed for %s: %s", name, order.custom_order_id, detail)
        return StepResult(name=name, ok=ok, detail=detail)
