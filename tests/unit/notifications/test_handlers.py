"""Unit tests for NotificationTransitionHandler."""

from __future__ import annotations

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from modules.notifications.constants import ORDER_STATUS_UPDATE, EnqueueAction
from modules.notifications.dtos import EnqueueResult
from modules.notifications.handlers import NotificationTransitionHandler
from modules.notifications.models import NotificationEvent
from modules.notifications.services import status_update_variables
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.events import OrderStatusChanged

pytestmark = pytest.mark.unit


def _event(order_id, old, new, **kwargs):
    return OrderStatusChanged(aggregate_id=order_id, old_status=old, new_status=new, **kwargs)


# ---------------------------------------------------------------------------
# Mocked queue
# ---------------------------------------------------------------------------


class TestHandlerMocked:
    @pytest.fixture()
    def queue(self):
        queue = MagicMock()
        order = MagicMock(
            id=uuid4(), customer_name="Ada", order_number="ORD-1", total_amount="12.00"
        )
        queue.get_order.return_value = order
        queue.enqueue.return_value = EnqueueResult(action=EnqueueAction.CREATED)
        return queue

    def test_notifiable_status_enqueues_update(self, queue):
        handler = NotificationTransitionHandler(queue=queue)

        result = handler.handle(_event(uuid4(), OrderStatus.PREPARING, OrderStatus.READY))

        assert result.action == EnqueueAction.CREATED
        args = queue.enqueue.call_args.args
        assert args[1] == ORDER_STATUS_UPDATE
        assert args[2] is None
        assert args[3] == "order_ready"
        assert args[4]["status"] == OrderStatus.READY

    def test_payment_only_change_is_ignored(self, queue):
        handler = NotificationTransitionHandler(queue=queue)
        event = _event(
            uuid4(),
            OrderStatus.CONFIRMED,
            OrderStatus.CONFIRMED,
            old_payment_status=PaymentStatus.PENDING,
            new_payment_status=PaymentStatus.FAILED,
        )

        assert handler.handle(event) is None
        queue.enqueue.assert_not_called()

    @pytest.mark.parametrize("status", [OrderStatus.COMPLETED, OrderStatus.RETURNED])
    def test_non_notifiable_status_is_ignored(self, queue, status):
        handler = NotificationTransitionHandler(queue=queue)
        assert handler.handle(_event(uuid4(), OrderStatus.DELIVERED, status)) is None
        queue.enqueue.assert_not_called()


# ---------------------------------------------------------------------------
# Real queue
# ---------------------------------------------------------------------------


class TestHandlerWithQueue:
    def test_replayed_event_collapses_onto_existing_row(self, order):
        handler = NotificationTransitionHandler()
        event = _event(order.id, OrderStatus.PENDING, OrderStatus.CONFIRMED)

        first = handler.handle(event)
        second = handler.handle(event)

        assert first.action == EnqueueAction.CREATED
        assert second.action == EnqueueAction.DEDUPLICATED
        assert second.event_id == first.event_id
        assert NotificationEvent.objects.filter(order=order).count() == 1


class TestStatusUpdateVariables:
    def test_variables_come_from_the_order(self, order):
        assert status_update_variables(order, OrderStatus.READY) == {
            "customer_name": "Ada Obi",
            "order_number": order.order_number,
            "status": OrderStatus.READY,
            "total_amount": "5000.00",
        }
