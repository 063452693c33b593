"""Notification worker.

Consumer side of the queue.  Each due event is claimed with a
compare-and-set update, so several workers can run the same batch
query without sending anything twice.  After the claim the worker
re-checks the suppression list (unsubscribes included) and the rate
limit, renders, and sends.

Delivery failures are counted: the event goes back to ``queued`` with
exponential back-off until ``NOTIFICATION_MAX_RETRIES`` failures, then
it is marked ``failed``.  Rate-limit denials are not failures; the event
is simply rescheduled for the end of the exhausted window.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import structlog
from django.conf import settings
from django.utils import timezone

from modules.core.exceptions import Exhausted
from modules.notifications.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RATE_LIMITS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    EVENT_TYPE_CATEGORIES,
    TRANSACTIONAL,
)
from modules.notifications.delivery import (
    DeliveryTransport,
    DjangoEmailTransport,
    PlainTextRenderer,
    TemplateRenderer,
)
from modules.notifications.dtos import WorkerReport
from modules.notifications.models import NotificationEvent
from modules.notifications.rate_limit import RateLimiter
from modules.notifications.repositories.django_repository import (
    NotificationEventDjangoRepository,
)
from modules.notifications.repositories.interfaces import (
    INotificationEventRepository,
)
from modules.notifications.suppression import SuppressionList

logger = structlog.get_logger(__name__)


def max_retries() -> int:
    return int(getattr(settings, "NOTIFICATION_MAX_RETRIES", DEFAULT_MAX_RETRIES))


def batch_size() -> int:
    return int(getattr(settings, "NOTIFICATION_BATCH_SIZE", DEFAULT_BATCH_SIZE))


def retry_backoff_seconds() -> int:
    return int(
        getattr(
            settings,
            "NOTIFICATION_RETRY_BACKOFF_SECONDS",
            DEFAULT_RETRY_BACKOFF_SECONDS,
        )
    )


def next_retry_delay(attempts: int) -> int:
    """Seconds to wait before retrying after failure number *attempts*.

    Raises ``Exhausted`` once *attempts* reaches ``NOTIFICATION_MAX_RETRIES``.
    """
    if attempts >= max_retries():
        raise Exhausted(f"Delivery failed {attempts} time(s); retry budget spent.")
    return retry_backoff_seconds() * 2 ** (attempts - 1)


def rate_limits_for(event_type: str) -> Tuple[str, List[Tuple[int, int]]]:
    """``(category, [(window_seconds, max_sends), ...])`` for *event_type*."""
    category = EVENT_TYPE_CATEGORIES.get(event_type, TRANSACTIONAL)
    configured = getattr(settings, "NOTIFICATION_RATE_LIMITS", None) or {}
    limits = configured.get(category) or DEFAULT_RATE_LIMITS[category]
    return category, [(int(window), int(count)) for window, count in limits]


class NotificationWorker:
    """Claims due notification events and delivers them."""

    def __init__(
        self,
        event_repository: Optional[INotificationEventRepository] = None,
        suppression_list: Optional[SuppressionList] = None,
        rate_limiter: Optional[RateLimiter] = None,
        renderer: Optional[TemplateRenderer] = None,
        transport: Optional[DeliveryTransport] = None,
    ) -> None:
        self._event_repo = event_repository or NotificationEventDjangoRepository()
        self._suppression = suppression_list or SuppressionList()
        self._rate_limiter = rate_limiter or RateLimiter()
        self._renderer = renderer or PlainTextRenderer()
        self._transport = transport or DjangoEmailTransport()

    def process_batch(
        self, limit: Optional[int] = None, now: Optional[datetime] = None
    ) -> WorkerReport:
        """Process up to *limit* due events. Returns the batch counters."""
        now = now or timezone.now()
        report = WorkerReport()

        for event_id in self._event_repo.due_ids(limit or batch_size(), now):
            event = self._event_repo.claim(event_id, now)
            if event is None:
                continue
            report.claimed += 1
            self._process(event, now, report)

        logger.info("notification.batch_processed", **report.model_dump())
        return report

    def _process(
        self, event: NotificationEvent, now: datetime, report: WorkerReport
    ) -> None:
        log = logger.bind(
            event_id=str(event.id),
            order_id=str(event.order_id),
            template_key=event.template_key,
        )

        reason = self._suppression.blocking_reason(event.recipient)
        if reason:
            self._event_repo.mark_failed(event, f"suppressed:{reason}", now)
            report.suppressed += 1
            log.info("notification.suppressed_at_send", reason=reason)
            return

        category, limits = rate_limits_for(event.event_type)
        decision = self._rate_limiter.check_and_increment(
            f"{category}:{event.recipient}", limits, now=now
        )
        if not decision.allowed:
            self._event_repo.reschedule(
                event, decision.retry_at, error="rate_limited"
            )
            report.deferred += 1
            log.info("notification.rate_limited", retry_at=str(decision.retry_at))
            return

        try:
            message = self._renderer.render(event.template_key, event.variables)
            self._transport.send(event.recipient, message)
        except Exception as exc:
            self._handle_delivery_failure(event, exc, now, report)
            return

        self._event_repo.mark_sent(event, now)
        report.sent += 1
        log.info("notification.sent")

    def _handle_delivery_failure(
        self,
        event: NotificationEvent,
        exc: Exception,
        now: datetime,
        report: WorkerReport,
    ) -> None:
        error = f"{type(exc).__name__}: {exc}"
        attempts = event.retry_count + 1
        log = logger.bind(event_id=str(event.id), retry_count=attempts, error=error)

        try:
            delay = next_retry_delay(attempts)
        except Exhausted as exhausted:
            event.retry_count = attempts
            self._event_repo.mark_failed(event, error, now)
            report.failed += 1
            log.error(
                "notification.delivery_failed_permanently", reason=exhausted.code
            )
            return

        self._event_repo.reschedule(
            event, now + timedelta(seconds=delay), error=error, count_retry=True
        )
        report.retried += 1
        log.warning("notification.delivery_failed_retrying", retry_in=delay)
