"""Concurrency integration tests.

Proves that the row lock taken by the state machine serializes
concurrent payment confirmations, and that the unique dedupe key keeps
concurrent enqueues of the same notification down to one row.

Uses ``TransactionTestCase`` so each thread can see committed data and
row-level locking behaves realistically.  SQLite serializes writers at
the file level and raises ``database is locked`` under this load, so
these tests only run against a server database.
"""

from __future__ import annotations

import logging
import unittest
from concurrent.futures import ThreadPoolExecutor, as_completed
from decimal import Decimal

import django
from django.db import connection
from django.test import TransactionTestCase

from modules.customers.models import Customer
from modules.notifications.constants import ORDER_STATUS_UPDATE
from modules.notifications.models import NotificationEvent
from modules.notifications.services import NotificationQueue
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.payments.constants import TransactionStatus
from modules.payments.models import PaymentTransaction
from modules.payments.references import generate_reference
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.services import PaymentVerifier

logger = logging.getLogger(__name__)

NUM_WORKERS = 8

requires_row_locks = unittest.skipIf(
    connection.vendor == "sqlite", "needs a database with row-level locks"
)


@requires_row_locks
class TestPaymentConcurrency(TransactionTestCase):
    """A payment confirmed by several callers at once is applied once."""

    def setUp(self):
        self.customer = Customer.objects.create(
            name="Concurrency Customer", email="concurrency@example.com"
        )
        self.order = Order.objects.create(
            customer=self.customer,
            customer_name=self.customer.name,
            customer_email=self.customer.email,
            total_amount=Decimal("5000.00"),
            payment_reference=generate_reference(),
        )

    def _verify_in_thread(self, thread_id: int) -> str:
        django.db.connections.close_all()
        verifier = PaymentVerifier(
            order_repository=OrderDjangoRepository(),
            payment_repository=PaymentDjangoRepository(),
        )
        result = verifier.verify(self.order.payment_reference, Decimal("5000.00"))
        logger.warning(
            "Thread %d: already_verified=%s", thread_id, result.already_verified
        )
        return "repeat" if result.already_verified else "applied"

    def test_parallel_verification_applies_once(self):
        results = []

        with ThreadPoolExecutor(max_workers=NUM_WORKERS) as pool:
            futures = {
                pool.submit(self._verify_in_thread, i): i for i in range(NUM_WORKERS)
            }
            for future in as_completed(futures):
                results.append(future.result())

        self.assertEqual(results.count("applied"), 1)
        self.assertEqual(results.count("repeat"), NUM_WORKERS - 1)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.PAID)
        self.assertEqual(self.order.status, OrderStatus.CONFIRMED)
        self.assertEqual(self.order.version, 2)
        self.assertEqual(
            OrderStatusHistory.objects.filter(order=self.order).count(), 1
        )
        self.assertEqual(
            PaymentTransaction.objects.filter(
                order=self.order, status=TransactionStatus.COMPLETED
            ).count(),
            1,
        )


@requires_row_locks
class TestEnqueueConcurrency(TransactionTestCase):
    """Parallel enqueues of the same notification produce a single row."""

    def setUp(self):
        self.order = Order.objects.create(
            customer_name="Concurrency Customer",
            customer_email="concurrency@example.com",
            total_amount=Decimal("5000.00"),
            payment_reference=generate_reference(),
        )

    def _enqueue_in_thread(self, thread_id: int) -> str:
        django.db.connections.close_all()
        result = NotificationQueue().enqueue(
            self.order.id, ORDER_STATUS_UPDATE, None, "order_ready", {}
        )
        return result.action

    def test_parallel_enqueue_creates_one_event(self):
        with ThreadPoolExecutor(max_workers=NUM_WORKERS) as pool:
            futures = [
                pool.submit(self._enqueue_in_thread, i) for i in range(NUM_WORKERS)
            ]
            results = [future.result() for future in as_completed(futures)]

        self.assertEqual(results.count("created"), 1)
        self.assertEqual(results.count("deduplicated"), NUM_WORKERS - 1)
        self.assertEqual(NotificationEvent.objects.filter(order=self.order).count(), 1)
