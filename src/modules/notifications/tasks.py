"""Celery tasks of the notifications module."""

import structlog
from celery import shared_task

from modules.notifications.constants import ORDER_STATUS_UPDATE, template_key_for_status
from modules.notifications.services import NotificationQueue, status_update_variables
from modules.notifications.worker import NotificationWorker

logger = structlog.get_logger(__name__)


@shared_task(name="notifications.process_queue")
def process_queue(limit=None):
    """Deliver one batch of due notification events."""
    report = NotificationWorker().process_batch(limit=limit)
    return report.model_dump()


@shared_task(name="notifications.enqueue_for_order")
def enqueue_for_order(order_id, status, recipient=None):
    """Enqueue an order status update outside the transition path."""
    queue = NotificationQueue()
    order = queue.get_order(order_id)
    result = queue.enqueue(
        order.id,
        ORDER_STATUS_UPDATE,
        recipient,
        template_key_for_status(status),
        status_update_variables(order, status),
    )
    logger.info(
        "notification.enqueue_task_completed",
        order_id=str(order.id),
        action=result.action,
    )
    return result.model_dump(mode="json")
