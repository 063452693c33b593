"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an order's status or payment status changes."""

    old_status: str = ""
    new_status: str = ""
    old_payment_status: str = ""
    new_payment_status: str = ""
    actor_id: str = ""
    version: int = 0
    is_correction: bool = False


@dataclass(frozen=True)
class PaymentReferenceAssigned(DomainEvent):
    """Raised once, when an order receives its payment reference."""

    reference: Optional[str] = None
