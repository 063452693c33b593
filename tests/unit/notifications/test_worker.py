"""Unit tests for NotificationWorker.

Covers:
- Successful delivery through the Django email backend.
- Delivery failures: back-off rescheduling, then ``failed`` after the
  retry budget.
- Send-time suppression (unsubscribe) and rate-limit deferral.
- Lost claims are skipped.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from django.core import mail
from freezegun import freeze_time

from modules.core.exceptions import Exhausted
from modules.notifications.constants import (
    ORDER_STATUS_UPDATE,
    NotificationStatus,
    SuppressionReason,
)
from modules.notifications.delivery import PlainTextRenderer, RenderedMessage
from modules.notifications.models import NotificationEvent
from modules.notifications.repositories.django_repository import (
    NotificationEventDjangoRepository,
)
from modules.notifications.services import NotificationQueue
from modules.notifications.suppression import SuppressionList
from modules.notifications.worker import (
    NotificationWorker,
    next_retry_delay,
    rate_limits_for,
)

pytestmark = pytest.mark.unit

T0 = datetime(2026, 3, 1, 10, 0, tzinfo=dt_timezone.utc)


def _enqueue(order, template_key="order_confirmed"):
    with freeze_time(T0):
        result = NotificationQueue().enqueue(
            order.id,
            ORDER_STATUS_UPDATE,
            None,
            template_key,
            {
                "customer_name": order.customer_name,
                "order_number": order.order_number,
                "status": template_key.removeprefix("order_"),
                "total_amount": str(order.total_amount),
            },
        )
    return NotificationEvent.objects.get(id=result.event_id)


class FailingTransport:
    def __init__(self) -> None:
        self.calls = 0

    def send(self, recipient: str, message: RenderedMessage) -> None:
        self.calls += 1
        raise ConnectionError("smtp down")


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestDelivery:
    def test_sends_due_event(self, order):
        event = _enqueue(order)

        report = NotificationWorker().process_batch(now=T0 + timedelta(seconds=1))

        assert report.claimed == 1
        assert report.sent == 1
        event.refresh_from_db()
        assert event.status == NotificationStatus.SENT
        assert event.sent_at is not None
        assert len(mail.outbox) == 1
        message = mail.outbox[0]
        assert message.to == ["ada@example.com"]
        assert message.subject == f"Your order {order.order_number} is confirmed"
        assert "Hi Ada Obi," in message.body

    def test_future_events_are_not_due(self, order):
        _enqueue(order)
        report = NotificationWorker().process_batch(now=T0 - timedelta(minutes=1))
        assert report.claimed == 0
        assert mail.outbox == []

    def test_batch_limit(self, order):
        _enqueue(order, "order_confirmed")
        _enqueue(order, "order_ready")

        report = NotificationWorker().process_batch(limit=1, now=T0 + timedelta(seconds=1))

        assert report.claimed == 1
        assert NotificationEvent.objects.filter(status=NotificationStatus.QUEUED).count() == 1

    def test_sent_event_is_never_sent_again(self, order):
        _enqueue(order)
        worker = NotificationWorker()
        worker.process_batch(now=T0 + timedelta(seconds=1))
        report = worker.process_batch(now=T0 + timedelta(hours=1))

        assert report.claimed == 0
        assert len(mail.outbox) == 1


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestDeliveryFailure:
    def test_failure_is_rescheduled_with_backoff(self, order):
        event = _enqueue(order)
        now = T0 + timedelta(seconds=1)

        report = NotificationWorker(transport=FailingTransport()).process_batch(now=now)

        assert report.retried == 1
        event.refresh_from_db()
        assert event.status == NotificationStatus.QUEUED
        assert event.retry_count == 1
        assert event.scheduled_at == now + timedelta(seconds=60)
        assert event.last_error == "ConnectionError: smtp down"
        assert event.processing_started_at is None

    def test_marked_failed_after_retry_budget(self, order, settings):
        settings.NOTIFICATION_MAX_RETRIES = 3
        event = _enqueue(order)
        transport = FailingTransport()
        worker = NotificationWorker(transport=transport)

        now = T0 + timedelta(seconds=1)
        worker.process_batch(now=now)
        now += timedelta(seconds=61)
        worker.process_batch(now=now)
        now += timedelta(seconds=121)
        report = worker.process_batch(now=now)

        assert transport.calls == 3
        assert report.failed == 1
        event.refresh_from_db()
        assert event.status == NotificationStatus.FAILED
        assert event.retry_count == 3

    def test_renderer_errors_count_as_delivery_failures(self, order):
        _enqueue(order)
        renderer = MagicMock()
        renderer.render.side_effect = KeyError("order_number")

        report = NotificationWorker(renderer=renderer).process_batch(
            now=T0 + timedelta(seconds=1)
        )

        assert report.retried == 1
        assert mail.outbox == []


# ---------------------------------------------------------------------------
# Suppression and rate limits
# ---------------------------------------------------------------------------


class TestSendTimeChecks:
    def test_unsubscribed_recipient_is_not_sent(self, order):
        event = _enqueue(order)
        SuppressionList().add("ada@example.com", SuppressionReason.UNSUBSCRIBE)

        report = NotificationWorker().process_batch(now=T0 + timedelta(seconds=1))

        assert report.suppressed == 1
        event.refresh_from_db()
        assert event.status == NotificationStatus.FAILED
        assert event.last_error == "suppressed:unsubscribe"
        assert mail.outbox == []

    def test_rate_limited_event_is_deferred_without_counting_a_retry(
        self, order, settings
    ):
        settings.NOTIFICATION_RATE_LIMITS = {"transactional": [(3600, 1)]}
        _enqueue(order, "order_confirmed")
        _enqueue(order, "order_ready")

        report = NotificationWorker().process_batch(now=T0 + timedelta(seconds=1))

        assert report.sent == 1
        assert report.deferred == 1
        deferred = NotificationEvent.objects.get(status=NotificationStatus.QUEUED)
        assert deferred.status == NotificationStatus.QUEUED
        assert deferred.retry_count == 0
        assert deferred.last_error == "rate_limited"
        assert deferred.scheduled_at == T0 + timedelta(hours=1)

    def test_rate_limits_for_unknown_event_type_default_to_transactional(self):
        category, limits = rate_limits_for("something_new")
        assert category == "transactional"
        assert limits


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


class TestRetryBudget:
    def test_backoff_doubles_per_failure(self):
        assert next_retry_delay(1) == 60
        assert next_retry_delay(2) == 120

    def test_third_failure_spends_the_budget(self):
        with pytest.raises(Exhausted):
            next_retry_delay(3)

    def test_budget_follows_settings(self, settings):
        settings.NOTIFICATION_MAX_RETRIES = 5
        settings.NOTIFICATION_RETRY_BACKOFF_SECONDS = 10
        assert next_retry_delay(4) == 80
        with pytest.raises(Exhausted):
            next_retry_delay(5)


class TestClaims:
    def test_lost_claim_is_skipped(self):
        repo = MagicMock()
        repo.due_ids.return_value = [uuid4()]
        repo.claim.return_value = None
        transport = MagicMock()

        report = NotificationWorker(event_repository=repo, transport=transport).process_batch(
            now=T0
        )

        assert report.claimed == 0
        transport.send.assert_not_called()

    def test_second_claim_of_same_row_fails(self, order):
        event = _enqueue(order)
        repo = NotificationEventDjangoRepository()
        assert repo.claim(event.id, T0) is not None
        assert repo.claim(event.id, T0) is None


class TestPlainTextRenderer:
    def test_unknown_template_uses_generic_subject(self):
        message = PlainTextRenderer().render("order_misc", {"order_number": "ORD-1"})
        assert message.subject == "Update on your order ORD-1"

    def test_missing_variables_render_empty(self):
        message = PlainTextRenderer().render("order_ready", {})
        assert message.subject == "Your order  is ready"
