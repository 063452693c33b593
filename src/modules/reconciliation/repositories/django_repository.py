"""Django ORM implementation of the reconciliation queries.

The bulk moves are compare-and-set ``UPDATE`` statements filtered on
the current status, so a row the worker finishes concurrently is not
touched and a second sweep finds nothing left to do.
"""

from __future__ import annotations

from datetime import datetime
from typing import List

from django.db.models import Exists, OuterRef

from modules.notifications.constants import NotificationStatus
from modules.notifications.models import NotificationEvent
from modules.orders.constants import TERMINAL_STATES, OrderStatus, PaymentStatus
from modules.orders.models import Order
from modules.payments.constants import TransactionStatus
from modules.payments.models import PaymentTransaction
from modules.reconciliation.repositories.interfaces import IReconciliationRepository


def _completed_transaction():
    return PaymentTransaction.objects.filter(
        order_id=OuterRef("pk"), status=TransactionStatus.COMPLETED
    )


class ReconciliationDjangoRepository(IReconciliationRepository):
    def fail_stuck_queued(self, cutoff: datetime, now: datetime, reason: str) -> int:
        return NotificationEvent.objects.filter(
            status=NotificationStatus.QUEUED, scheduled_at__lt=cutoff
        ).update(status=NotificationStatus.FAILED, last_error=reason, updated_at=now)

    def fail_stuck_processing(
        self, cutoff: datetime, now: datetime, reason: str
    ) -> int:
        return NotificationEvent.objects.filter(
            status=NotificationStatus.PROCESSING, processing_started_at__lt=cutoff
        ).update(status=NotificationStatus.FAILED, last_error=reason, updated_at=now)

    def dead_letter_failed(self, cutoff: datetime, now: datetime) -> int:
        return NotificationEvent.objects.filter(
            status=NotificationStatus.FAILED, updated_at__lt=cutoff
        ).update(status=NotificationStatus.DEAD, updated_at=now)

    def paid_orders_missing_transaction(self, since: datetime) -> List[Order]:
        return list(
            Order.objects.filter(
                payment_status=PaymentStatus.PAID,
                payment_reference__isnull=False,
                created_at__gte=since,
            )
            .exclude(payment_reference="")
            .exclude(Exists(_completed_transaction()))
            .order_by("created_at")
        )

    def paid_orders_still_pending(self) -> List[Order]:
        return list(
            Order.objects.filter(
                payment_status=PaymentStatus.PAID, status=OrderStatus.PENDING
            ).order_by("created_at")
        )

    def unpaid_orders_with_completed_transaction(self) -> List[Order]:
        return list(
            Order.objects.filter(Exists(_completed_transaction()))
            .exclude(status__in=TERMINAL_STATES)
            .exclude(payment_status__in=[PaymentStatus.PAID, PaymentStatus.REFUNDED])
            .order_by("created_at")
        )
