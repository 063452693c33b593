"""Integration tests for the Celery configuration and tasks."""

import pytest
from django.core import mail

from modules.notifications.constants import NotificationStatus
from modules.notifications.models import NotificationEvent

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def _celery_eager(settings):
    """Run tasks synchronously in the test process."""
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


class TestCeleryConfig:
    """Celery loads through Django."""

    def test_celery_app_is_importable(self):
        from config.celery import app

        assert app.main == "foodorder"

    def test_celery_app_exported_from_init(self):
        from config import celery_app

        assert celery_app.main == "foodorder"

    def test_celery_serializer_is_json(self, settings):
        assert settings.CELERY_TASK_SERIALIZER == "json"
        assert settings.CELERY_RESULT_SERIALIZER == "json"
        assert settings.CELERY_ACCEPT_CONTENT == ["json"]

    def test_celery_timezone_matches_django(self, settings):
        assert settings.CELERY_TIMEZONE == settings.TIME_ZONE

    def test_beat_schedules_worker_and_sweeper(self, settings):
        schedule = settings.CELERY_BEAT_SCHEDULE
        assert schedule["process-notification-queue"]["task"] == "notifications.process_queue"
        assert schedule["reconciliation-sweep"]["task"] == "reconciliation.run_sweep"


class TestNotificationTasks:
    def test_enqueue_for_order_creates_event(self, order):
        from modules.notifications.services import status_update_variables
        from modules.notifications.tasks import enqueue_for_order

        result = enqueue_for_order.delay(str(order.id), "confirmed")

        assert result.successful()
        assert result.result["action"] == "created"
        event = NotificationEvent.objects.get()
        assert event.template_key == "order_confirmed"
        assert event.variables == status_update_variables(order, "confirmed")

    def test_process_queue_delivers_due_events(self, order):
        from modules.notifications.tasks import enqueue_for_order, process_queue

        enqueue_for_order.delay(str(order.id), "ready")

        result = process_queue.delay()

        assert result.successful()
        assert result.result["claimed"] == 1
        assert result.result["sent"] == 1
        assert NotificationEvent.objects.get().status == NotificationStatus.SENT
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ["ada@example.com"]

    def test_process_queue_on_empty_queue(self):
        from modules.notifications.tasks import process_queue

        output = process_queue()

        assert output["claimed"] == 0
        assert output["sent"] == 0


class TestReconciliationTask:
    def test_run_sweep_returns_counters(self):
        from modules.reconciliation.tasks import run_sweep

        result = run_sweep.delay()

        assert result.successful()
        assert result.result["total_corrections"] == 0
        assert result.result["errors"] == 0
