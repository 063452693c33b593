"""Payment repository interface."""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.payments.models import PaymentTransaction, SecurityIncident


class IPaymentRepository(IRepository["PaymentTransaction"]):
    """Repository contract for payment transactions and incidents."""

    @abstractmethod
    def get_by_reference(self, reference: str) -> Optional[PaymentTransaction]:
        """Retrieve the transaction keyed by *reference*."""

    @abstractmethod
    def register_attempt(
        self,
        order: Order,
        reference: str,
        amount: Decimal,
        currency: str,
        raw_payload: Dict[str, Any],
        status: str = "pending",
    ) -> Tuple[PaymentTransaction, bool]:
        """Insert-or-update the transaction and count one more attempt."""

    @abstractmethod
    def has_completed(self, order_id: UUID) -> bool:
        """``True`` if the order has any completed transaction."""

    @abstractmethod
    def has_other_completed(self, order_id: UUID, reference: str) -> bool:
        """``True`` if a completed transaction with another reference exists."""

    @abstractmethod
    def record_incident(self, **fields: Any) -> SecurityIncident:
        """Persist a security incident."""
