"""Reconciliation repository interface.

Read side of the sweeper: each query returns the rows that violate
one consistency rule, plus the bulk status moves on the notification
queue.  Corrections to orders and payments go through their owning
services, never through this repository.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from modules.orders.models import Order


class IReconciliationRepository(ABC):
    @abstractmethod
    def fail_stuck_queued(self, cutoff: datetime, now: datetime, reason: str) -> int:
        """Fail queued events scheduled before *cutoff*. Returns the count."""

    @abstractmethod
    def fail_stuck_processing(
        self, cutoff: datetime, now: datetime, reason: str
    ) -> int:
        """Fail events claimed before *cutoff* that never finished."""

    @abstractmethod
    def dead_letter_failed(self, cutoff: datetime, now: datetime) -> int:
        """Move events failed before *cutoff* to dead."""

    @abstractmethod
    def paid_orders_missing_transaction(self, since: datetime) -> List[Order]:
        """Paid orders with a reference but no completed transaction."""

    @abstractmethod
    def paid_orders_still_pending(self) -> List[Order]:
        """Orders whose payment is paid while the order is still pending."""

    @abstractmethod
    def unpaid_orders_with_completed_transaction(self) -> List[Order]:
        """Open orders that have a completed transaction but are not paid."""
