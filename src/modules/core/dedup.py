"""Dedup store: deterministic keys plus insert-or-get on unique constraints.

Two writers racing to perform the same unit of work both try to insert
the row carrying the same unique key.  The database lets exactly one of
them win; the loser catches the ``IntegrityError`` inside a savepoint
and returns the winner's row instead.  No locks are taken.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import structlog
from django.db import IntegrityError, models, transaction

from modules.core.serialization import normalize_for_json

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=models.Model)

DEDUPE_KEY_SEPARATOR = ":"


def normalize_recipient(value: Optional[str]) -> str:
    """Lower-case and trim an address so that ``A@B.com `` equals ``a@b.com``."""
    return (value or "").strip().lower()


def payload_fingerprint(payload: Dict[str, Any]) -> str:
    """Stable sha256 fingerprint of a JSON-serialisable payload."""
    canonical = json.dumps(
        normalize_for_json(payload), sort_keys=True, separators=(",", ":")
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_dedupe_key(
    subject_type: str,
    subject_id: Any,
    action: Optional[str] = None,
    recipient_or_payload: Any = None,
) -> str:
    """Derive a deterministic key from ``(subject_type, subject_id, action, recipient_or_payload)``.

    Strings are treated as recipients and normalised; mappings are
    reduced to a fingerprint.  Empty trailing parts are omitted, so a
    key without an action stays stable when one is never supplied.
    """
    if not subject_type or subject_id in (None, ""):
        raise ValueError("subject_type and subject_id are required for a dedupe key.")

    parts = [str(subject_type).strip(), str(subject_id).strip()]
    if isinstance(recipient_or_payload, dict):
        extra = payload_fingerprint(recipient_or_payload)
    else:
        extra = normalize_recipient(recipient_or_payload)

    if extra:
        parts.append(extra)
    if action:
        parts.append(str(action).strip())
    return DEDUPE_KEY_SEPARATOR.join(parts)


def insert_or_get(
    model: Type[M],
    *,
    lookup: Dict[str, Any],
    defaults: Optional[Dict[str, Any]] = None,
    conflict_queryset: Optional[models.QuerySet] = None,
) -> Tuple[M, bool]:
    """Atomically insert a row or return the one that already holds the key.

    ``lookup`` holds the unique-key fields.  On conflict the existing row
    is fetched from ``conflict_queryset`` (defaults to all rows of
    ``model``), which lets conditional constraints narrow the match.

    Returns ``(instance, created)``.
    """
    values = {**lookup, **(defaults or {})}
    try:
        with transaction.atomic():
            instance = model.objects.create(**values)
        return instance, True
    except IntegrityError:
        queryset = conflict_queryset if conflict_queryset is not None else model.objects.all()
        existing = queryset.filter(**lookup).first()
        if existing is None:
            # The conflict came from a different constraint.
            raise
        logger.info(
            "dedup.conflict_resolved",
            model=model._meta.label,
            existing_id=str(existing.pk),
        )
        return existing, False
