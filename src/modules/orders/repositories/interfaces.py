"""Order repository interface.

Extends ``IRepository[Order]`` with the locked reads, history tracking
and outbox bookkeeping the Order State Machine depends on.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Iterable, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.core.models import OutboxEvent
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order holding an exclusive row lock until commit."""

    @abstractmethod
    def get_by_reference_for_update(self, reference: str) -> Optional[Order]:
        """Retrieve and lock the order that owns a payment reference."""

    @abstractmethod
    def reference_in_use(self, reference: str, exclude_id: str) -> bool:
        """True when an order other than *exclude_id* owns *reference*."""

    @abstractmethod
    def add_history(
        self,
        order: Order,
        old_status: Optional[str],
        old_payment_status: str,
        actor_id: str,
        notes: str = "",
        is_correction: bool = False,
    ) -> OrderStatusHistory:
        """Record a mutation in the order's audit trail."""

    @abstractmethod
    def mark_event_published(self, event_id: UUID) -> None:
        """Flag the outbox row of a domain event as delivered."""

    @abstractmethod
    def pending_events(
        self, event_types: Iterable[str], limit: int = 100
    ) -> List[OutboxEvent]:
        """Outbox rows of *event_types* whose handlers never completed."""
