"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``TransitionOrderDTO``: input of a status transition.
- ``CorrectOrderDTO``: input of an admin status correction.
- ``AssignPaymentReferenceDTO``: input of a payment reference request.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import OrderStatus, PaymentStatus


class TransitionOrderDTO(BaseModel):
    """Immutable DTO for status transition requests."""

    model_config = ConfigDict(frozen=True)

    target_status: str
    payment_status: Optional[str] = None
    notes: str = ""

    @field_validator("target_status")
    @classmethod
    def known_order_status(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in OrderStatus.values:
            raise ValueError(f"Unknown order status '{v}'.")
        return v

    @field_validator("payment_status")
    @classmethod
    def known_payment_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if v not in PaymentStatus.values:
            raise ValueError(f"Unknown payment status '{v}'.")
        return v


class CorrectOrderDTO(BaseModel):
    """Immutable DTO for admin corrections; a reason is mandatory."""

    model_config = ConfigDict(frozen=True)

    target_status: str
    reason: str

    @field_validator("target_status")
    @classmethod
    def known_order_status(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in OrderStatus.values:
            raise ValueError(f"Unknown order status '{v}'.")
        return v

    @field_validator("reason")
    @classmethod
    def reason_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("A reason is required.")
        return v


class AssignPaymentReferenceDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_reference: Optional[str] = None
