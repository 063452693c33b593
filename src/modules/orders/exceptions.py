"""Order domain exceptions.

Raised by the Order State Machine when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations

from modules.core.exceptions import Conflict, NotFound


class OrderNotFound(NotFound):
    """The requested order does not exist."""

    code = "order_not_found"


class InvalidTransition(Conflict):
    """The target status is not reachable from the current status."""

    code = "invalid_transition"


class CorrectionNotAllowed(Conflict):
    """The actor may not use the correction path."""

    code = "correction_not_allowed"


class PaymentReferenceLocked(Conflict):
    """The order already carries a different payment reference."""

    code = "payment_reference_locked"
