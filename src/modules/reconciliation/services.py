"""Reconciliation Sweeper.

Periodic repair job.  Each step targets one kind of drift and is
idempotent on its own, so a second run right after the first reports
zero corrections:

1. fail notification events stuck in ``queued`` or ``processing``;
2. dead-letter events that stayed ``failed`` past the grace period;
3. backfill the missing completed transaction of paid orders;
4. align order and payment status (through the state machine);
5. replay outbox rows whose in-process handlers never completed;
6. prune expired rate-limit windows.

A failure on one order is logged and counted; it does not stop the
remaining work.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import structlog
from django.conf import settings
from django.utils import timezone

from modules.core.authorization import ActorContext
from modules.core.exceptions import DomainError
from modules.core.models import AuditLog
from modules.notifications.rate_limit import RateLimiter
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.events import OrderStatusChanged, PaymentReferenceAssigned
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.repositories.interfaces import IOrderRepository
from modules.orders.services import OrderStateMachine
from modules.payments.events import PaymentVerified
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.services import PaymentVerifier
from modules.reconciliation.dtos import SweepReport
from modules.reconciliation.repositories.django_repository import (
    ReconciliationDjangoRepository,
)
from modules.reconciliation.repositories.interfaces import IReconciliationRepository

logger = structlog.get_logger(__name__)

SWEEPER_ACTOR = ActorContext.system("reconciliation-sweeper")

REPLAYABLE_EVENTS = {
    cls.__name__: cls
    for cls in (OrderStatusChanged, PaymentReferenceAssigned, PaymentVerified)
}

QUEUED_TIMEOUT_REASON = "timeout: queued past deadline"
PROCESSING_TIMEOUT_REASON = "timeout: processing never completed"


def _setting(name: str, default: timedelta) -> timedelta:
    value = getattr(settings, name, default)
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=int(value))


class ReconciliationSweeper:
    """Detects and repairs drift between orders, payments and the queue."""

    def __init__(
        self,
        repository: Optional[IReconciliationRepository] = None,
        order_repository: Optional[IOrderRepository] = None,
        state_machine: Optional[OrderStateMachine] = None,
        payment_verifier: Optional[PaymentVerifier] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._repo = repository or ReconciliationDjangoRepository()
        self._order_repo = order_repository or OrderDjangoRepository()
        self._state_machine = state_machine or OrderStateMachine(self._order_repo)
        self._verifier = payment_verifier or PaymentVerifier(
            order_repository=self._order_repo,
            payment_repository=PaymentDjangoRepository(),
            state_machine=self._state_machine,
        )
        self._rate_limiter = rate_limiter or RateLimiter()

    def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or timezone.now()
        report = SweepReport()
        log = logger.bind(run_at=now.isoformat())
        log.info("reconciliation.started")

        self._clean_stuck_queue(now, report)
        self._dead_letter(now, report)
        self._backfill_transactions(now, report)
        self._fix_status_consistency(report)
        self._replay_outbox(report)
        self._prune_rate_limits(now, report)

        if report.total_corrections:
            AuditLog.record(
                "reconciliation_completed",
                "reconciliation",
                actor_id=SWEEPER_ACTOR.actor_id,
                **report.model_dump(),
            )
        log.info(
            "reconciliation.completed",
            total_corrections=report.total_corrections,
            **report.model_dump(),
        )
        return report

    # ------------------------------------------------------------------
    # Notification queue
    # ------------------------------------------------------------------

    def _clean_stuck_queue(self, now: datetime, report: SweepReport) -> None:
        queued_cutoff = now - _setting(
            "RECONCILIATION_QUEUED_TIMEOUT", timedelta(hours=1)
        )
        processing_cutoff = now - _setting(
            "RECONCILIATION_PROCESSING_TIMEOUT", timedelta(minutes=30)
        )
        report.stuck_queued = self._repo.fail_stuck_queued(
            queued_cutoff, now, QUEUED_TIMEOUT_REASON
        )
        report.stuck_processing = self._repo.fail_stuck_processing(
            processing_cutoff, now, PROCESSING_TIMEOUT_REASON
        )
        if report.stuck_queued or report.stuck_processing:
            logger.warning(
                "reconciliation.stuck_notifications_failed",
                queued=report.stuck_queued,
                processing=report.stuck_processing,
            )

    def _dead_letter(self, now: datetime, report: SweepReport) -> None:
        cutoff = now - _setting(
            "RECONCILIATION_DEAD_LETTER_AFTER", timedelta(hours=24)
        )
        report.dead_lettered = self._repo.dead_letter_failed(cutoff, now)
        if report.dead_lettered:
            logger.warning(
                "reconciliation.notifications_dead_lettered",
                count=report.dead_lettered,
            )

    # ------------------------------------------------------------------
    # Orders and payments
    # ------------------------------------------------------------------

    def _backfill_transactions(self, now: datetime, report: SweepReport) -> None:
        days = int(getattr(settings, "RECONCILIATION_BACKFILL_LOOKBACK_DAYS", 30))
        for order in self._repo.paid_orders_missing_transaction(
            now - timedelta(days=days)
        ):
            try:
                txn = self._verifier.backfill(order.id, SWEEPER_ACTOR)
            except DomainError as exc:
                report.errors += 1
                logger.error(
                    "reconciliation.backfill_failed",
                    order_id=str(order.id),
                    error=str(exc),
                )
                continue
            if txn is not None:
                report.backfilled += 1

    def _fix_status_consistency(self, report: SweepReport) -> None:
        for order in self._repo.paid_orders_still_pending():
            self._correct_order(
                order.id,
                OrderStatus.CONFIRMED,
                None,
                "reconciliation: paid order left pending",
                report,
            )

        for order in self._repo.unpaid_orders_with_completed_transaction():
            target = (
                order.status
                if order.is_at_or_beyond(OrderStatus.CONFIRMED)
                else OrderStatus.CONFIRMED
            )
            self._correct_order(
                order.id,
                target,
                PaymentStatus.PAID,
                "reconciliation: completed transaction on unpaid order",
                report,
            )

    def _correct_order(
        self,
        order_id,
        target_status: str,
        payment_status: Optional[str],
        notes: str,
        report: SweepReport,
    ) -> None:
        try:
            before = self._order_repo.get_by_id(str(order_id))
            updated = self._state_machine.transition(
                order_id,
                target_status,
                SWEEPER_ACTOR,
                payment_status=payment_status,
                notes=notes,
            )
        except DomainError as exc:
            report.errors += 1
            logger.error(
                "reconciliation.status_fix_failed",
                order_id=str(order_id),
                error_code=exc.code,
                error=str(exc),
            )
            return

        if before is not None and updated.version == before.version:
            return
        report.status_fixed += 1
        AuditLog.record(
            "order_status_reconciled",
            "order",
            order_id,
            actor_id=SWEEPER_ACTOR.actor_id,
            message=notes,
            new_status=updated.status,
            new_payment_status=updated.payment_status,
            version=updated.version,
        )

    # ------------------------------------------------------------------
    # Outbox and housekeeping
    # ------------------------------------------------------------------

    def _replay_outbox(self, report: SweepReport) -> None:
        for outbox_event in self._order_repo.pending_events(REPLAYABLE_EVENTS):
            event_class = REPLAYABLE_EVENTS[outbox_event.event_type]
            try:
                event = event_class.from_payload(outbox_event.payload)
            except (KeyError, TypeError, ValueError) as exc:
                outbox_event.mark_as_failed(f"unreadable payload: {exc}")
                report.outbox_failed += 1
                continue

            if self._state_machine.publish(event):
                report.outbox_replayed += 1
                logger.info(
                    "reconciliation.outbox_replayed",
                    event_id=str(event.event_id),
                    event_type=outbox_event.event_type,
                )
            else:
                outbox_event.mark_as_failed("handler failed during replay")
                report.outbox_failed += 1

    def _prune_rate_limits(self, now: datetime, report: SweepReport) -> None:
        retention = _setting(
            "RECONCILIATION_RATE_LIMIT_RETENTION", timedelta(days=2)
        )
        report.windows_pruned = self._rate_limiter.prune(now - retention)
