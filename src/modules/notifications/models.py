"""NotificationEvent, SuppressionEntry and RateLimitWindow models.

- ``dedupe_key`` is unique among queued, processing and sent events
  (conditional unique constraint).  Failed and dead events release the
  key so that an explicit requeue or a later enqueue can succeed.
- Events are created by the queue and mutated only by the worker, the
  sweeper and admin requeue.
- ``SuppressionEntry`` holds either a full address or ``@domain``.
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone

from modules.core.models import BaseModel
from modules.notifications.constants import (
    ACTIVE_STATUSES,
    NotificationStatus,
    SuppressionReason,
)


class NotificationEvent(BaseModel):
    """Outbound notification waiting for, undergoing or done with delivery."""

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="notification_events",
    )
    event_type: models.CharField = models.CharField(max_length=100)
    recipient: models.CharField = models.CharField(max_length=254)
    template_key: models.CharField = models.CharField(max_length=100)
    variables: models.JSONField = models.JSONField(default=dict, blank=True)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=NotificationStatus.choices,
        default=NotificationStatus.QUEUED,
    )
    retry_count: models.PositiveIntegerField = models.PositiveIntegerField(default=0)
    dedupe_key: models.CharField = models.CharField(max_length=512)
    scheduled_at: models.DateTimeField = models.DateTimeField(default=timezone.now)
    processing_started_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    sent_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    last_error: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "notification_events"
        ordering = ["scheduled_at", "created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["dedupe_key"],
                condition=Q(status__in=ACTIVE_STATUSES),
                name="notification_active_dedupe_key_uniq",
            ),
        ]
        indexes = [
            models.Index(
                fields=["status", "scheduled_at"],
                name="notif_status_scheduled_idx",
            ),
            models.Index(fields=["dedupe_key"], name="notif_dedupe_key_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.event_type}/{self.template_key} -> {self.recipient} [{self.status}]"


class SuppressionEntry(BaseModel):
    """Address or domain that must not receive further notifications."""

    recipient: models.CharField = models.CharField(max_length=254, unique=True)
    reason: models.CharField = models.CharField(
        max_length=20, choices=SuppressionReason.choices
    )
    is_active: models.BooleanField = models.BooleanField(default=True)
    notes: models.TextField = models.TextField(blank=True, default="")
    reactivated_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    reactivated_by: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )

    class Meta:
        db_table = "email_suppression_list"
        ordering = ["-created_at"]
        verbose_name_plural = "suppression entries"

    @property
    def is_domain(self) -> bool:
        return self.recipient.startswith("@")

    def __str__(self) -> str:
        state = "active" if self.is_active else "reactivated"
        return f"{self.recipient} ({self.reason}, {state})"


class RateLimitWindow(BaseModel):
    """Send counter of one identifier within one fixed window."""

    identifier: models.CharField = models.CharField(max_length=320)
    window_start: models.DateTimeField = models.DateTimeField()
    window_seconds: models.PositiveIntegerField = models.PositiveIntegerField()
    count: models.PositiveIntegerField = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "rate_limit_windows"
        constraints = [
            models.UniqueConstraint(
                fields=["identifier", "window_start", "window_seconds"],
                name="rate_limit_window_uniq",
            ),
        ]
        indexes = [
            models.Index(fields=["window_start"], name="rate_limit_window_start_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.identifier}@{self.window_start:%Y-%m-%dT%H:%M} = {self.count}"
