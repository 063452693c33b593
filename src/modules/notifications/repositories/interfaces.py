"""Notification event repository interface."""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.notifications.models import NotificationEvent


class INotificationEventRepository(IRepository["NotificationEvent"]):
    """Repository contract for the notification queue."""

    @abstractmethod
    def insert_or_get(self, data: Dict[str, Any]) -> Tuple[NotificationEvent, bool]:
        """Insert a queued event or return the active one with the same key."""

    @abstractmethod
    def has_active(self, dedupe_key: str) -> bool:
        """``True`` if a queued, processing or sent event holds *dedupe_key*."""

    @abstractmethod
    def due_ids(self, limit: int, now: datetime) -> List[UUID]:
        """Ids of queued events whose ``scheduled_at`` has passed."""

    @abstractmethod
    def claim(self, id: UUID, now: datetime) -> Optional[NotificationEvent]:
        """Atomically move a queued event to processing; ``None`` if lost."""

    @abstractmethod
    def mark_sent(self, event: NotificationEvent, now: datetime) -> None:
        """Record a successful delivery."""

    @abstractmethod
    def mark_failed(self, event: NotificationEvent, error: str, now: datetime) -> None:
        """Give up on the event."""

    @abstractmethod
    def reschedule(
        self,
        event: NotificationEvent,
        scheduled_at: datetime,
        error: str = "",
        count_retry: bool = False,
    ) -> None:
        """Put a processing event back in the queue."""
