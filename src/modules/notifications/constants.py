"""Notification domain constants."""

from django.db import models

from modules.orders.constants import OrderStatus


class NotificationStatus(models.TextChoices):
    QUEUED = "queued", "Queued"
    PROCESSING = "processing", "Processing"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"
    DEAD = "dead", "Dead-lettered"


class SuppressionReason(models.TextChoices):
    HARD_BOUNCE = "hard_bounce", "Hard bounce"
    COMPLAINT = "complaint", "Complaint"
    UNSUBSCRIBE = "unsubscribe", "Unsubscribe"


class EnqueueAction(models.TextChoices):
    CREATED = "created", "Created"
    DEDUPLICATED = "deduplicated", "Deduplicated"
    SKIPPED = "skipped", "Skipped"


# A dedupe key may exist only once among these statuses.
ACTIVE_STATUSES: tuple[str, ...] = (
    NotificationStatus.QUEUED,
    NotificationStatus.PROCESSING,
    NotificationStatus.SENT,
)

# Refused at enqueue time; unsubscribes are only honoured at send time.
ENQUEUE_BLOCKING_REASONS: frozenset[str] = frozenset(
    {SuppressionReason.HARD_BOUNCE, SuppressionReason.COMPLAINT}
)

ORDER_STATUS_UPDATE = "order_status_update"

NOTIFIABLE_STATUSES: frozenset[str] = frozenset(
    {
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    }
)

TRANSACTIONAL = "transactional"
MARKETING = "marketing"

EVENT_TYPE_CATEGORIES: dict[str, str] = {
    ORDER_STATUS_UPDATE: TRANSACTIONAL,
}

HOUR = 3600
DAY = 86400

# (window_seconds, max_sends) per notification category and recipient.
DEFAULT_RATE_LIMITS: dict[str, list[tuple[int, int]]] = {
    TRANSACTIONAL: [(HOUR, 50), (DAY, 200)],
    MARKETING: [(HOUR, 2), (DAY, 5)],
}

DEFAULT_MAX_RETRIES = 3
DEFAULT_BATCH_SIZE = 10
DEFAULT_RETRY_BACKOFF_SECONDS = 60


def template_key_for_status(status: str) -> str:
    return f"order_{status}"
