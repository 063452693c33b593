"""PaymentTransaction and SecurityIncident models.

- ``PaymentTransaction`` is keyed by its unique ``reference``; repeated
  verification attempts update the same row (``verification_attempts``).
- At most one transaction per order may be ``completed``.  The verifier
  enforces it under the order lock; storage only guarantees reference
  uniqueness.
- ``SecurityIncident`` rows are append-only and never corrected
  automatically.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from modules.core.models import BaseModel
from modules.payments.constants import (
    DEFAULT_CURRENCY,
    IncidentSeverity,
    IncidentType,
    TransactionStatus,
)
from shared.domain.events import DomainEventMixin


class PaymentTransaction(DomainEventMixin, BaseModel):
    """Gateway payment attempt for an order."""

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_transactions",
    )
    reference: models.CharField = models.CharField(max_length=100, unique=True)
    amount: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    currency: models.CharField = models.CharField(
        max_length=3, default=DEFAULT_CURRENCY
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.PENDING,
    )
    raw_payload: models.JSONField = models.JSONField(default=dict, blank=True)
    verification_attempts: models.PositiveIntegerField = (
        models.PositiveIntegerField(default=0)
    )
    last_verified_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    verified_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    is_backfilled: models.BooleanField = models.BooleanField(default=False)

    class Meta:
        db_table = "payment_transactions"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "status"],
                name="payment_txn_order_status_idx",
            ),
        ]

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED

    def __str__(self) -> str:
        return f"{self.reference} [{self.status}] {self.amount} {self.currency}"


class SecurityIncident(BaseModel):
    """Permanent record of a security-relevant payment anomaly."""

    incident_type: models.CharField = models.CharField(
        max_length=50, choices=IncidentType.choices
    )
    severity: models.CharField = models.CharField(
        max_length=20,
        choices=IncidentSeverity.choices,
        default=IncidentSeverity.HIGH,
    )
    reference: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        related_name="security_incidents",
        null=True,
        blank=True,
    )
    expected_amount: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    received_amount: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    details: models.JSONField = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "security_incidents"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["incident_type"], name="sec_incident_type_idx"),
            models.Index(fields=["reference"], name="sec_incident_reference_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.incident_type} [{self.severity}] {self.reference}"
