"""Payment domain exceptions."""

from __future__ import annotations

from modules.core.exceptions import Conflict, ValidationError
from modules.orders.exceptions import InvalidTransition


class InvalidPaymentRequest(ValidationError):
    """Amount, currency or payload of a verification request is malformed."""

    code = "invalid_payment_request"


class DuplicatePayment(Conflict):
    """Another completed transaction already settled this order."""

    code = "duplicate_payment"


class PaymentForClosedOrder(InvalidTransition):
    """A payment arrived for an order that is already closed."""

    code = "payment_for_closed_order"

    def __init__(self, message: str, order_id=None, order_status: str = "") -> None:
        self.order_id = order_id
        self.order_status = order_status
        super().__init__(message)


class InvalidWebhookSignature(Exception):
    """The gateway callback signature does not match the shared secret."""
