"""Django ORM implementation of the notification event repository.

Claiming uses a compare-and-set ``UPDATE ... WHERE status = 'queued'``:
when two workers race for the same row only one update matches, so no
row lock is held while a message is being delivered.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.core.dedup import insert_or_get
from modules.notifications.constants import ACTIVE_STATUSES, NotificationStatus
from modules.notifications.models import NotificationEvent
from modules.notifications.repositories.interfaces import (
    INotificationEventRepository,
)

logger = structlog.get_logger(__name__)


class NotificationEventDjangoRepository(INotificationEventRepository):
    """Concrete notification repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[NotificationEvent]:
        try:
            return NotificationEvent.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    @transaction.atomic
    def save(self, entity: NotificationEvent) -> NotificationEvent:
        entity.save()
        return entity

    def insert_or_get(self, data: Dict[str, Any]) -> Tuple[NotificationEvent, bool]:
        lookup = {"dedupe_key": data["dedupe_key"]}
        defaults = {key: value for key, value in data.items() if key != "dedupe_key"}
        return insert_or_get(
            NotificationEvent,
            lookup=lookup,
            defaults=defaults,
            conflict_queryset=NotificationEvent.objects.filter(
                status__in=ACTIVE_STATUSES
            ),
        )

    def has_active(self, dedupe_key: str) -> bool:
        return NotificationEvent.objects.filter(
            dedupe_key=dedupe_key, status__in=ACTIVE_STATUSES
        ).exists()

    def due_ids(self, limit: int, now: datetime) -> List[UUID]:
        return list(
            NotificationEvent.objects.filter(
                status=NotificationStatus.QUEUED, scheduled_at__lte=now
            )
            .order_by("scheduled_at", "created_at")
            .values_list("id", flat=True)[:limit]
        )

    def claim(self, id: UUID, now: datetime) -> Optional[NotificationEvent]:
        claimed = NotificationEvent.objects.filter(
            id=id, status=NotificationStatus.QUEUED
        ).update(
            status=NotificationStatus.PROCESSING,
            processing_started_at=now,
            updated_at=now,
        )
        if not claimed:
            logger.info("notification.claim_lost", event_id=str(id))
            return None
        return NotificationEvent.objects.get(id=id)

    def mark_sent(self, event: NotificationEvent, now: datetime) -> None:
        event.status = NotificationStatus.SENT
        event.sent_at = now
        event.last_error = ""
        event.save(update_fields=["status", "sent_at", "last_error"])

    def mark_failed(self, event: NotificationEvent, error: str, now: datetime) -> None:
        event.status = NotificationStatus.FAILED
        event.last_error = error
        event.save(update_fields=["status", "last_error", "retry_count"])

    def reschedule(
        self,
        event: NotificationEvent,
        scheduled_at: datetime,
        error: str = "",
        count_retry: bool = False,
    ) -> None:
        event.status = NotificationStatus.QUEUED
        event.scheduled_at = scheduled_at
        event.processing_started_at = None
        if error:
            event.last_error = error
        if count_retry:
            event.retry_count += 1
        event.save(
            update_fields=[
                "status",
                "scheduled_at",
                "processing_started_at",
                "last_error",
                "retry_count",
            ]
        )
