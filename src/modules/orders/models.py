"""Order and OrderStatusHistory models.

Rules implemented here (the service layer enforces the rest):
- ``order_number`` auto-generated as human-readable identifier.
- ``payment_reference`` is write-once: the model refuses to overwrite a
  non-null reference with a different value.
- ``version`` is a monotonic counter bumped by the state machine on every
  successful mutation; it is never reset.
- Transition rules (forward-only chain, terminal side branches) live in
  ``can_transition_to``.
- Each mutation generates a history record with the acting identity.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    FORWARD_CHAIN,
    ORDER_NUMBER_MAX_RETRIES,
    PAYMENT_TRANSITIONS,
    TERMINAL_STATES,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.exceptions import PaymentReferenceLocked
from shared.domain.events import DomainEventMixin


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``ORD-YYYYMMDD-XXXXXX``).  The UUIDv7 ``id`` is used for
    all internal references and API lookups.

    ``customer_email`` / ``customer_name`` are snapshots taken at checkout;
    guest orders have no ``customer`` link at all.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    customer: models.ForeignKey = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="orders",
        null=True,
        blank=True,
    )
    customer_name: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    customer_email: models.EmailField = models.EmailField(
        max_length=254, blank=True, default=""
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    total_amount: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    delivery_fee: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    payment_reference: models.CharField = models.CharField(
        max_length=100,
        unique=True,
        null=True,
        blank=True,
    )
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)
    paid_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    status_changed_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    last_actor_id: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["payment_status"], name="orders_payment_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    @property
    def expected_amount(self) -> Decimal:
        """Amount the customer must pay: order total plus delivery fee."""
        return (self.total_amount or Decimal("0.00")) + (
            self.delivery_fee or Decimal("0.00")
        )

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether moving to *new_status* follows the rules.

        - nothing leaves a terminal state;
        - any open state may move to a terminal state;
        - along the fulfilment chain only forward moves are allowed,
          skipping intermediate steps included.
        """
        if self.is_terminal or new_status == self.status:
            return False
        if new_status in TERMINAL_STATES:
            return True
        if new_status not in FORWARD_CHAIN:
            return False
        return FORWARD_CHAIN.index(new_status) > FORWARD_CHAIN.index(self.status)

    def can_change_payment_to(self, new_payment_status: str) -> bool:
        allowed = PAYMENT_TRANSITIONS.get(self.payment_status, set())
        return new_payment_status in allowed

    def is_at_or_beyond(self, status: str) -> bool:
        """``True`` if the order already sits at or past *status* on the chain."""
        if self.status not in FORWARD_CHAIN or status not in FORWARD_CHAIN:
            return False
        return FORWARD_CHAIN.index(self.status) >= FORWARD_CHAIN.index(status)

    def assign_payment_reference(self, reference: str) -> bool:
        """Set the reference once. Returns ``True`` if it was newly assigned."""
        if self.payment_reference:
            if self.payment_reference != reference:
                raise PaymentReferenceLocked(
                    f"Order {self.order_number} already has a payment reference."
                )
            return False
        self.payment_reference = reference
        return True

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        if self.customer_email:
            self.customer_email = self.customer_email.strip().lower()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status}/{self.payment_status})"


class OrderStatusHistory(BaseModel):
    """Audit trail record for every order mutation."""

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    old_payment_status: models.CharField = models.CharField(
        max_length=20, blank=True, default=""
    )
    new_payment_status: models.CharField = models.CharField(
        max_length=20, blank=True, default=""
    )
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)
    actor_id: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    is_correction: models.BooleanField = models.BooleanField(default=False)

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]
        verbose_name_plural = "order status histories"

    def __str__(self) -> str:
        return f"{self.order_id}: {self.old_status} -> {self.new_status} (v{self.version})"
