"""Event handlers that feed the notification queue."""

from __future__ import annotations

from typing import Optional

import structlog

from modules.notifications.constants import (
    NOTIFIABLE_STATUSES,
    ORDER_STATUS_UPDATE,
    template_key_for_status,
)
from modules.notifications.dtos import EnqueueResult
from modules.notifications.services import NotificationQueue, status_update_variables
from modules.orders.events import OrderStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class NotificationTransitionHandler(IEventHandler[OrderStatusChanged]):
    """Enqueues a customer update when an order reaches a notifiable status.

    Payment-only changes and statuses the customer does not care about
    (``pending``, ``completed``, ``returned``) produce nothing.  Replays
    of the same event collapse onto the existing queue row through the
    dedupe key.
    """

    def __init__(self, queue: Optional[NotificationQueue] = None) -> None:
        self._queue = queue

    @property
    def queue(self) -> NotificationQueue:
        if self._queue is None:
            self._queue = NotificationQueue()
        return self._queue

    def handle(self, event: OrderStatusChanged) -> Optional[EnqueueResult]:
        if event.old_status == event.new_status:
            return None
        if event.new_status not in NOTIFIABLE_STATUSES:
            return None

        order = self.queue.get_order(event.aggregate_id)
        result = self.queue.enqueue(
            order.id,
            ORDER_STATUS_UPDATE,
            None,
            template_key_for_status(event.new_status),
            status_update_variables(order, event.new_status),
        )
        logger.info(
            "notification.transition_handled",
            order_id=str(order.id),
            new_status=event.new_status,
            action=result.action,
        )
        return result


order_status_notification_handler = NotificationTransitionHandler()
