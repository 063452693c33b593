"""Unit tests for the Order model transition rules."""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.exceptions import PaymentReferenceLocked
from modules.orders.models import Order

pytestmark = pytest.mark.unit


def _order(status=OrderStatus.PENDING, payment_status=PaymentStatus.PENDING, **kw):
    return Order(status=status, payment_status=payment_status, **kw)


# ---------------------------------------------------------------------------
# Status rules
# ---------------------------------------------------------------------------


class TestCanTransitionTo:
    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.PREPARING),
            (OrderStatus.PENDING, OrderStatus.READY),
            (OrderStatus.READY, OrderStatus.DELIVERED),
            (OrderStatus.PREPARING, OrderStatus.CANCELLED),
            (OrderStatus.DELIVERED, OrderStatus.COMPLETED),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.RETURNED),
            (OrderStatus.CONFIRMED, OrderStatus.REFUNDED),
        ],
    )
    def test_allowed(self, current, target):
        assert _order(current).can_transition_to(target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.CONFIRMED, OrderStatus.PENDING),
            (OrderStatus.DELIVERED, OrderStatus.PREPARING),
            (OrderStatus.CANCELLED, OrderStatus.CONFIRMED),
            (OrderStatus.COMPLETED, OrderStatus.REFUNDED),
            (OrderStatus.READY, OrderStatus.READY),
        ],
    )
    def test_refused(self, current, target):
        assert not _order(current).can_transition_to(target)

    def test_is_at_or_beyond(self):
        order = _order(OrderStatus.READY)
        assert order.is_at_or_beyond(OrderStatus.CONFIRMED)
        assert order.is_at_or_beyond(OrderStatus.READY)
        assert not order.is_at_or_beyond(OrderStatus.DELIVERED)


class TestPaymentRules:
    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (PaymentStatus.PENDING, PaymentStatus.PAID, True),
            (PaymentStatus.PENDING, PaymentStatus.FAILED, True),
            (PaymentStatus.FAILED, PaymentStatus.PAID, True),
            (PaymentStatus.PAID, PaymentStatus.REFUNDED, True),
            (PaymentStatus.PAID, PaymentStatus.PENDING, False),
            (PaymentStatus.PAID, PaymentStatus.FAILED, False),
            (PaymentStatus.REFUNDED, PaymentStatus.PAID, False),
        ],
    )
    def test_can_change_payment_to(self, current, target, allowed):
        assert _order(payment_status=current).can_change_payment_to(target) is allowed


# ---------------------------------------------------------------------------
# Amounts and references
# ---------------------------------------------------------------------------


class TestExpectedAmount:
    def test_includes_delivery_fee(self):
        order = _order(total_amount=Decimal("4500.00"), delivery_fee=Decimal("500.00"))
        assert order.expected_amount == Decimal("5000.00")


class TestAssignPaymentReference:
    def test_first_assignment(self):
        order = _order()
        assert order.assign_payment_reference("txn_a") is True
        assert order.payment_reference == "txn_a"

    def test_same_reference_is_idempotent(self):
        order = _order(payment_reference="txn_a")
        assert order.assign_payment_reference("txn_a") is False

    def test_different_reference_is_refused(self):
        order = _order(payment_reference="txn_a")
        with pytest.raises(PaymentReferenceLocked):
            order.assign_payment_reference("txn_b")


class TestOrderNumber:
    def test_generated_on_save(self, customer):
        order = Order.objects.create(customer=customer, customer_email=" ADA@example.com ")
        assert order.order_number.startswith("ORD-")
        assert order.customer_email == "ada@example.com"
        assert order.version == 1
