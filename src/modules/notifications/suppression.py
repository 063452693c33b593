"""Suppression list.

Suppressed recipients never get another notification.  Hard bounces
and complaints are refused already at enqueue time; unsubscribes are
checked by the worker right before sending.  Entries are immutable;
only a privileged actor can reactivate a recipient, and a later
bounce or complaint suppresses it again.  A bounce or complaint for an
address that only unsubscribed upgrades the entry's reason so enqueue
starts refusing it.
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

import structlog
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from modules.core.authorization import ActorContext
from modules.core.dedup import insert_or_get, normalize_recipient
from modules.core.exceptions import ValidationError
from modules.core.models import AuditLog
from modules.notifications.constants import (
    ENQUEUE_BLOCKING_REASONS,
    SuppressionReason,
)
from modules.notifications.exceptions import (
    SuppressionChangeNotAllowed,
    SuppressionNotFound,
)
from modules.notifications.models import SuppressionEntry

logger = structlog.get_logger(__name__)


def suppression_keys(recipient: str) -> list[str]:
    """Entries that can block *recipient*: the address and its ``@domain``."""
    address = normalize_recipient(recipient)
    keys = [address]
    if "@" in address and not address.startswith("@"):
        keys.append("@" + address.split("@", 1)[1])
    return keys


class SuppressionList:
    """Read/write access to ``SuppressionEntry`` rows."""

    def blocking_reason(
        self, recipient: str, reasons: Optional[Iterable[str]] = None
    ) -> Optional[str]:
        """Reason of the active entry blocking *recipient*, if any.

        ``reasons`` restricts which suppression reasons count.
        """
        queryset = SuppressionEntry.objects.filter(
            recipient__in=suppression_keys(recipient), is_active=True
        )
        if reasons is not None:
            queryset = queryset.filter(reason__in=list(reasons))
        entry = queryset.order_by("created_at").first()
        return entry.reason if entry else None

    def is_suppressed(
        self, recipient: str, reasons: Optional[Iterable[str]] = None
    ) -> bool:
        return self.blocking_reason(recipient, reasons) is not None

    @transaction.atomic
    def add(
        self, recipient: str, reason: str, notes: str = ""
    ) -> Tuple[SuppressionEntry, bool]:
        """Suppress *recipient*. Returns ``(entry, created)``."""
        key = normalize_recipient(recipient)
        if not key:
            raise ValidationError("Recipient is required.")
        if reason not in SuppressionReason.values:
            raise ValidationError(f"Unknown suppression reason '{reason}'.")

        entry, created = insert_or_get(
            SuppressionEntry,
            lookup={"recipient": key},
            defaults={"reason": reason, "notes": notes},
        )
        if not created and not entry.is_active:
            entry.is_active = True
            entry.reason = reason
            entry.notes = notes
            entry.save(update_fields=["is_active", "reason", "notes"])
            logger.info("suppression.resuppressed", recipient=key, reason=reason)
        elif (
            not created
            and reason in ENQUEUE_BLOCKING_REASONS
            and entry.reason not in ENQUEUE_BLOCKING_REASONS
        ):
            previous_reason = entry.reason
            entry.reason = reason
            if notes:
                entry.notes = notes
            entry.save(update_fields=["reason", "notes"])
            AuditLog.record(
                "suppression_escalated",
                "suppression_entry",
                entry.id,
                message=notes,
                recipient=key,
                previous_reason=previous_reason,
                reason=reason,
            )
            logger.warning(
                "suppression.escalated",
                recipient=key,
                previous_reason=previous_reason,
                reason=reason,
            )
        elif created:
            logger.info("suppression.added", recipient=key, reason=reason)
        return entry, created

    @transaction.atomic
    def reactivate(
        self, entry_id: str, actor: ActorContext, notes: str = ""
    ) -> SuppressionEntry:
        """Lift a suppression. Admin only."""
        if not actor.is_privileged:
            raise SuppressionChangeNotAllowed(
                f"Actor {actor} may not reactivate suppressed recipients."
            )
        try:
            entry = (
                SuppressionEntry.objects.select_for_update().filter(id=entry_id).first()
            )
        except (ValueError, DjangoValidationError):
            entry = None
        if entry is None:
            raise SuppressionNotFound(f"Suppression entry {entry_id} not found.")
        if not entry.is_active:
            return entry

        entry.is_active = False
        entry.reactivated_at = timezone.now()
        entry.reactivated_by = actor.actor_id
        if notes:
            entry.notes = notes
        entry.save(
            update_fields=["is_active", "reactivated_at", "reactivated_by", "notes"]
        )
        AuditLog.record(
            "suppression_reactivated",
            "suppression_entry",
            entry.id,
            actor_id=actor.actor_id,
            message=notes,
            recipient=entry.recipient,
            reason=entry.reason,
        )
        logger.info(
            "suppression.reactivated", recipient=entry.recipient, actor=str(actor)
        )
        return entry
