"""Notification Queue.

``enqueue`` turns a business event into at most one ``NotificationEvent``
per ``(event_type, order, recipient, template_key)``.  Idempotency comes
from the dedup store: the loser of a concurrent insert gets the winner's
event id back with ``action = "deduplicated"``.

Refusals (no recipient, suppressed recipient) are not errors: they are
written to the audit log and reported as ``action = "skipped"``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.authorization import ActorContext
from modules.core.dedup import build_dedupe_key, normalize_recipient
from modules.core.exceptions import ValidationError
from modules.core.models import AuditLog
from modules.core.serialization import normalize_for_json
from modules.customers.repositories.django_repository import CustomerDjangoRepository
from modules.customers.repositories.interfaces import ICustomerRepository
from modules.notifications.constants import (
    ENQUEUE_BLOCKING_REASONS,
    EnqueueAction,
    NotificationStatus,
)
from modules.notifications.dtos import EnqueueResult
from modules.notifications.exceptions import (
    NotificationNotFound,
    NotificationNotRequeueable,
)
from modules.notifications.models import NotificationEvent
from modules.notifications.repositories.django_repository import (
    NotificationEventDjangoRepository,
)
from modules.notifications.repositories.interfaces import (
    INotificationEventRepository,
)
from modules.notifications.suppression import SuppressionList
from modules.orders.exceptions import OrderNotFound
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


def status_update_variables(order: Order, status: str) -> Dict[str, Any]:
    """Template variables of an ``order_status_update`` notification."""
    return {
        "customer_name": order.customer_name,
        "order_number": order.order_number,
        "status": status,
        "total_amount": str(order.total_amount),
    }


class NotificationQueue:
    """Deduplicating producer side of the notification queue."""

    def __init__(
        self,
        event_repository: Optional[INotificationEventRepository] = None,
        order_repository: Optional[IOrderRepository] = None,
        customer_repository: Optional[ICustomerRepository] = None,
        suppression_list: Optional[SuppressionList] = None,
    ) -> None:
        self._event_repo = event_repository or NotificationEventDjangoRepository()
        self._order_repo = order_repository or OrderDjangoRepository()
        self._customer_repo = customer_repository or CustomerDjangoRepository()
        self._suppression = suppression_list or SuppressionList()

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    @transaction.atomic
    def enqueue(
        self,
        order_id: UUID | str,
        event_type: str,
        recipient: Optional[str],
        template_key: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> EnqueueResult:
        if not event_type or not event_type.strip():
            raise ValidationError("event_type is required.")
        if not template_key or not template_key.strip():
            raise ValidationError("template_key is required.")
        event_type = event_type.strip()
        template_key = template_key.strip()

        order = self.get_order(order_id)

        log = logger.bind(
            order_id=str(order.id), event_type=event_type, template_key=template_key
        )

        address = normalize_recipient(recipient) or self.resolve_recipient(order)
        if not address:
            log.warning("notification.skipped_missing_recipient")
            AuditLog.record(
                "notification_skipped",
                "order",
                order.id,
                message="No recipient could be resolved for the notification.",
                reason="missing_recipient",
                event_type=event_type,
                template_key=template_key,
            )
            return EnqueueResult(
                action=EnqueueAction.SKIPPED, reason="missing_recipient"
            )

        blocking = self._suppression.blocking_reason(address, ENQUEUE_BLOCKING_REASONS)
        if blocking:
            log.info("notification.skipped_suppressed", reason=blocking)
            AuditLog.record(
                "notification_suppressed",
                "order",
                order.id,
                message="Recipient is on the suppression list.",
                recipient=address,
                reason=blocking,
                event_type=event_type,
                template_key=template_key,
            )
            return EnqueueResult(
                action=EnqueueAction.SKIPPED, reason=f"suppressed:{blocking}"
            )

        dedupe_key = build_dedupe_key(event_type, order.id, template_key, address)
        event, created = self._event_repo.insert_or_get(
            {
                "dedupe_key": dedupe_key,
                "order": order,
                "event_type": event_type,
                "recipient": address,
                "template_key": template_key,
                "variables": normalize_for_json(variables or {}),
                "status": NotificationStatus.QUEUED,
                "scheduled_at": timezone.now(),
            }
        )

        if not created:
            log.info("notification.deduplicated", event_id=str(event.id))
            AuditLog.record(
                "notification_deduplicated",
                "notification_event",
                event.id,
                dedupe_key=dedupe_key,
                existing_status=event.status,
            )
            return EnqueueResult(
                action=EnqueueAction.DEDUPLICATED,
                event_id=event.id,
                dedupe_key=dedupe_key,
            )

        log.info("notification.enqueued", event_id=str(event.id))
        return EnqueueResult(
            action=EnqueueAction.CREATED, event_id=event.id, dedupe_key=dedupe_key
        )

    def get_order(self, order_id: UUID | str) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def resolve_recipient(self, order: Order) -> str:
        """Order snapshot first, then the customer directory."""
        if order.customer_email:
            return normalize_recipient(order.customer_email)
        if order.customer_id:
            customer = self._customer_repo.get_contact(str(order.customer_id))
            if customer is not None:
                return normalize_recipient(customer.email)
        return ""

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    @transaction.atomic
    def requeue(self, event_id: UUID | str, actor: ActorContext) -> NotificationEvent:
        """Give a failed or dead-lettered event a fresh retry budget.

        Fails with ``NotificationNotRequeueable`` when another active event
        already holds the same dedupe key.
        """
        event = self._event_repo.get_by_id(str(event_id))
        if event is None:
            raise NotificationNotFound(f"Notification event {event_id} not found.")
        if event.status not in (NotificationStatus.FAILED, NotificationStatus.DEAD):
            raise NotificationNotRequeueable(
                f"Event {event.id} is {event.status}; only failed or dead events "
                "can be requeued."
            )
        if self._event_repo.has_active(event.dedupe_key):
            raise NotificationNotRequeueable(
                f"Another active event already holds key {event.dedupe_key}."
            )

        previous_status = event.status
        event.status = NotificationStatus.QUEUED
        event.retry_count = 0
        event.scheduled_at = timezone.now()
        event.processing_started_at = None
        self._event_repo.save(event)
        AuditLog.record(
            "notification_requeued",
            "notification_event",
            event.id,
            actor_id=actor.actor_id,
            previous_status=previous_status,
            last_error=event.last_error,
        )
        logger.info(
            "notification.requeued", event_id=str(event.id), actor=str(actor)
        )
        return event
