"""Notification DTOs (Pydantic v2, immutable)."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EnqueueNotificationDTO(BaseModel):
    """Input of an enqueue request."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    event_type: str
    template_key: str
    recipient: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_type", "template_key")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be blank.")
        return v

    @field_validator("recipient")
    @classmethod
    def blank_recipient_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class EnqueueResult(BaseModel):
    """Outcome of an enqueue call."""

    model_config = ConfigDict(frozen=True)

    action: str
    event_id: Optional[UUID] = None
    dedupe_key: Optional[str] = None
    reason: Optional[str] = None


class WorkerReport(BaseModel):
    """Counters of one worker batch."""

    claimed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    deferred: int = 0
    suppressed: int = 0
