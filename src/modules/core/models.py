"""Base abstract models and shared persistence infrastructure.

Provides:
- ``BaseModel``: UUIDv7 primary key + created_at / updated_at timestamps.
- ``SoftDeleteModel``: Extends BaseModel with soft-delete via ``deleted_at``.
- ``OutboxEvent``: Transactional Outbox for domain events that must
  survive a failed in-process handler.
- ``AuditLog``: append-only trail of warnings, refusals and corrections.

``save()`` on ``BaseModel`` ensures ``updated_at`` is included when
``update_fields`` is specified (Django skips ``auto_now`` fields otherwise).
"""

from __future__ import annotations

import uuid6
from django.db import models
from django.utils import timezone

from modules.core.serialization import normalize_for_json

# ---------------------------------------------------------------------------
# BaseModel
# ---------------------------------------------------------------------------


class BaseModel(models.Model):
    """Abstract base with UUIDv7 PK and timestamp bookkeeping."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid6.uuid7,
        editable=False,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        """Ensure ``updated_at`` is refreshed even when ``update_fields`` is passed."""
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)


# ---------------------------------------------------------------------------
# Soft Delete infrastructure
# ---------------------------------------------------------------------------


class SoftDeleteQuerySet(models.QuerySet):
    """QuerySet with soft-delete helpers."""

    def alive(self) -> SoftDeleteQuerySet:
        """Return only non-deleted records."""
        return self.filter(deleted_at__isnull=True)

    def delete(self) -> tuple[int, dict[str, int]]:
        """Bulk soft-delete: sets ``deleted_at`` + ``updated_at``."""
        now = timezone.now()
        count = self.alive().update(deleted_at=now, updated_at=now)
        return count, {self.model._meta.label: count}


class SoftDeleteManager(models.Manager):
    def get_queryset(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db)

    def alive(self) -> SoftDeleteQuerySet:
        return self.get_queryset().alive()


class SoftDeleteModel(BaseModel):
    """Abstract model with soft-delete via a single ``deleted_at`` timestamp.

    ``objects`` is **unfiltered**; use ``Model.objects.alive()`` to exclude
    soft-deleted rows.
    """

    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        default=None,
        db_index=True,
    )

    objects = SoftDeleteManager()

    class Meta:
        abstract = True

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def delete(self, using=None, keep_parents=False) -> tuple[int, dict[str, int]]:
        """Soft-delete this instance (no-op if already deleted)."""
        if self.is_deleted:
            return 0, {}
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])
        return 1, {self._meta.label: 1}


# ---------------------------------------------------------------------------
# Transactional Outbox
# ---------------------------------------------------------------------------


class EventStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PUBLISHED = "PUBLISHED", "Published"
    FAILED = "FAILED", "Failed"


class OutboxEvent(BaseModel):
    """Transactional Outbox for reliable domain event delivery.

    Events are persisted in the **same database transaction** as the
    state change that produced them.  The in-process handlers run right
    after; only when they succeed is the row marked ``PUBLISHED``.  Rows
    left ``PENDING`` are replayed by the reconciliation sweep.

    Workflow:
    1. Repository writes ``OutboxEvent`` inside ``transaction.atomic()``.
    2. Handlers succeed → ``mark_as_published()``.
    3. Replay fails → ``mark_as_failed(error)`` increments ``retry_count``.
    """

    event_id = models.UUIDField(unique=True, null=True, blank=True, default=None)
    event_type = models.CharField(max_length=100)
    payload = models.JSONField()
    aggregate_id = models.CharField(max_length=255)
    topic = models.CharField(max_length=100)
    status = models.CharField(
        max_length=20,
        choices=EventStatus.choices,
        default=EventStatus.PENDING,
    )
    processed_at = models.DateTimeField(null=True, blank=True, default=None)
    error_message = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    retry_count = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "outbox_events"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["event_type"],
                name="outbox_event_type_idx",
            ),
            models.Index(
                fields=["aggregate_id"],
                name="outbox_aggregate_id_idx",
            ),
            models.Index(
                fields=["status", "created_at"],
                name="outbox_status_created_idx",
            ),
        ]

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def mark_as_published(self) -> None:
        """Mark event as successfully published."""
        self.status = EventStatus.PUBLISHED
        self.processed_at = timezone.now()
        self.save(update_fields=["status", "processed_at", "updated_at"])

    def mark_as_failed(self, error: str) -> None:
        """Mark event as failed and record the error."""
        self.status = EventStatus.FAILED
        self.error_message = error
        self.retry_count += 1
        self.save(
            update_fields=[
                "status",
                "error_message",
                "retry_count",
                "updated_at",
            ]
        )

    def __str__(self) -> str:
        return f"{self.event_type} [{self.status}] ({self.aggregate_id})"


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


class AuditLog(BaseModel):
    """Append-only audit entry.

    Written for events that are not errors but must stay visible to
    operators: skipped or suppressed notifications, deduplicated
    enqueues, reconciliation corrections, admin overrides.
    """

    action = models.CharField(max_length=100)
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=255, blank=True, default="")
    actor_id = models.CharField(max_length=255, blank=True, default="")
    message = models.TextField(blank=True, default="")
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "audit_logs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["action"], name="audit_logs_action_idx"),
            models.Index(
                fields=["entity_type", "entity_id"],
                name="audit_logs_entity_idx",
            ),
        ]

    @classmethod
    def record(
        cls,
        action: str,
        entity_type: str,
        entity_id: object = "",
        actor_id: str = "",
        message: str = "",
        **details,
    ) -> AuditLog:
        return cls.objects.create(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id else "",
            actor_id=actor_id,
            message=message,
            details=normalize_for_json(details),
        )

    def __str__(self) -> str:
        return f"{self.action} {self.entity_type}:{self.entity_id}"
