"""Shared domain error taxonomy.

Every bounded context raises subclasses of these errors.  The API layer
(Views) catches them and maps each family onto an HTTP status; the
``code`` attribute is the stable, machine-readable identifier returned
to clients.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for all domain errors."""

    code = "domain_error"


class ValidationError(DomainError):
    """Malformed input. Caller's fault, not retryable as-is."""

    code = "validation_error"


class NotFound(DomainError):
    """The referenced aggregate does not exist."""

    code = "not_found"


class Conflict(DomainError):
    """The request conflicts with the current state of the aggregate."""

    code = "conflict"


class AmountMismatch(DomainError):
    """Claimed payment amount differs from the expected amount."""

    code = "amount_mismatch"

    def __init__(self, reference: str, expected, received, order_id=None) -> None:
        self.reference = reference
        self.order_id = order_id
        self.expected = expected
        self.received = received
        super().__init__(
            f"Amount mismatch for {reference}: expected {expected}, received {received}."
        )


class TransientError(DomainError):
    """Lock contention or storage timeout. Safe to retry with backoff."""

    code = "transient_error"


class Exhausted(DomainError):
    """Retry budget spent; the item needs manual intervention."""

    code = "exhausted"
