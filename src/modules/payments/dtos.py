"""Payment DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  DTOs are
immutable (``frozen=True``).

- ``VerifyPaymentDTO``: input of a verification request.
- ``VerificationResult``: outcome returned to callers and serialised
  by the API layer.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from modules.orders.models import Order


class VerifyPaymentDTO(BaseModel):
    """Immutable DTO for payment verification requests."""

    model_config = ConfigDict(frozen=True)

    reference: str
    amount: Decimal
    currency: Optional[str] = None
    raw_payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("reference")
    @classmethod
    def reference_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Reference must not be blank.")
        return v

    @field_validator("amount")
    @classmethod
    def amount_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Amount must be greater than zero.")
        return v

    @field_validator("currency")
    @classmethod
    def currency_is_iso_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be a 3-letter ISO code.")
        return v


class VerificationResult(BaseModel):
    """Immutable outcome of a payment verification."""

    model_config = ConfigDict(frozen=True)

    success: bool
    order_id: UUID
    order_number: str
    status: str
    payment_status: str
    reference: str
    version: int
    already_verified: bool = False
    transaction_id: Optional[UUID] = None

    @classmethod
    def from_order(
        cls,
        order: Order,
        reference: str,
        success: bool = True,
        already_verified: bool = False,
        transaction_id: Optional[UUID] = None,
    ) -> VerificationResult:
        return cls(
            success=success,
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            payment_status=order.payment_status,
            reference=reference,
            version=order.version,
            already_verified=already_verified,
            transaction_id=transaction_id,
        )
