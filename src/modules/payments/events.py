"""Domain events for the Payments bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class PaymentVerified(DomainEvent):
    """Raised when a transaction is completed and its order marked paid."""

    order_id: Optional[UUID] = None
    reference: str = ""
    amount: Decimal = Decimal("0.00")
    currency: str = ""
    is_backfilled: bool = False
