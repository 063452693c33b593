"""Payment domain constants."""

from decimal import Decimal

from django.db import models


class TransactionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class IncidentType(models.TextChoices):
    AMOUNT_MISMATCH = "payment_amount_mismatch", "Payment amount mismatch"
    CLOSED_ORDER_PAYMENT = "payment_for_closed_order", "Payment for closed order"
    INVALID_SIGNATURE = "invalid_webhook_signature", "Invalid webhook signature"


class IncidentSeverity(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"
    CRITICAL = "critical", "Critical"


DEFAULT_AMOUNT_TOLERANCE = Decimal("0.01")
DEFAULT_CURRENCY = "NGN"

# Gateway webhooks carry amounts in minor units (kobo, cents).
MINOR_UNITS_PER_MAJOR = Decimal("100")

WEBHOOK_SIGNATURE_HEADER = "HTTP_X_PAYSTACK_SIGNATURE"
WEBHOOK_SUCCESS_EVENTS = frozenset({"charge.success"})
WEBHOOK_FAILURE_EVENTS = frozenset({"charge.failed"})
