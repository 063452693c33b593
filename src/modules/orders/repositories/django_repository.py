"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Domain
events collected on the aggregate are written to the transactional
outbox in the same transaction as the order row.

Concurrency control uses ``select_for_update()``; the caller owns the
surrounding ``transaction.atomic()`` so the lock lives until commit.
Driver-level lock timeouts surface as ``TransientError``.
"""

from __future__ import annotations

from typing import Iterable, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q

from modules.core.models import EventStatus, OutboxEvent
from modules.core.retry import translate_operational_errors
from modules.core.serialization import serialize_event_payload
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

OUTBOX_TOPIC = "orders"
OUTBOX_MAX_REPLAYS = 5


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with its customer and history.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.select_related("customer")
                .prefetch_related("status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            with translate_operational_errors("order.lock"):
                return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_reference_for_update(self, reference: str) -> Optional[Order]:
        with translate_operational_errors("order.lock_by_reference"):
            return (
                Order.objects.select_for_update()
                .filter(payment_reference=reference)
                .first()
            )

    def reference_in_use(self, reference: str, exclude_id: str) -> bool:
        return (
            Order.objects.filter(payment_reference=reference)
            .exclude(id=exclude_id)
            .exists()
        )

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and drain its domain events into the outbox."""
        with translate_operational_errors("order.save"):
            entity.save()

            events = entity.domain_events
            for event in events:
                OutboxEvent.objects.create(
                    event_id=event.event_id,
                    event_type=event.event_name,
                    aggregate_id=str(event.aggregate_id),
                    payload=serialize_event_payload(event),
                    topic=OUTBOX_TOPIC,
                )
        entity.clear_domain_events()

        logger.info(
            "order.saved",
            order_id=str(entity.id),
            version=entity.version,
            event_count=len(events),
        )
        return entity

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(
        self,
        order: Order,
        old_status: Optional[str],
        old_payment_status: str,
        actor_id: str,
        notes: str = "",
        is_correction: bool = False,
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order=order,
            old_status=old_status,
            new_status=order.status,
            old_payment_status=old_payment_status,
            new_payment_status=order.payment_status,
            version=order.version,
            actor_id=actor_id,
            notes=notes,
            is_correction=is_correction,
        )
        logger.info(
            "order.history_added",
            order_id=str(order.id),
            old_status=old_status,
            new_status=order.status,
            version=order.version,
        )
        return history

    # ------------------------------------------------------------------
    # Outbox
    # ------------------------------------------------------------------

    def mark_event_published(self, event_id: UUID) -> None:
        outbox_event = OutboxEvent.objects.filter(event_id=event_id).first()
        if outbox_event is not None and outbox_event.status != EventStatus.PUBLISHED:
            outbox_event.mark_as_published()

    def pending_events(
        self, event_types: Iterable[str], limit: int = 100
    ) -> List[OutboxEvent]:
        return list(
            OutboxEvent.objects.filter(event_type__in=list(event_types))
            .filter(
                Q(status=EventStatus.PENDING)
                | Q(status=EventStatus.FAILED, retry_count__lt=OUTBOX_MAX_REPLAYS)
            )
            .order_by("created_at")[:limit]
        )
