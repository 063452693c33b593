"""Fixed-window send quotas per identifier.

Each ``(identifier, window_start, window_seconds)`` row counts sends in
one window; a new window starts a new row, which is the reset.  Counts
are read then incremented without a lock: a race may let one extra send
through, which is acceptable.  Storage errors fail open.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from typing import Iterable, Optional, Tuple

import structlog
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from modules.core.dedup import insert_or_get
from modules.notifications.models import RateLimitWindow

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_at: Optional[datetime] = None
    window_seconds: Optional[int] = None


def window_start_for(moment: datetime, window_seconds: int) -> datetime:
    epoch = int(moment.timestamp())
    start = epoch - (epoch % window_seconds)
    return datetime.fromtimestamp(start, tz=moment.tzinfo or dt_timezone.utc)


class RateLimiter:
    """Counts sends per identifier in fixed windows."""

    def check_and_increment(
        self,
        identifier: str,
        limits: Iterable[Tuple[int, int]],
        now: Optional[datetime] = None,
    ) -> RateLimitDecision:
        """Consume one send for *identifier* if every window has room.

        ``limits`` is a list of ``(window_seconds, max_count)`` pairs.
        Nothing is consumed when any window is exhausted.
        """
        now = now or timezone.now()
        limits = list(limits)
        try:
            with transaction.atomic():
                windows = []
                for window_seconds, max_count in limits:
                    start = window_start_for(now, window_seconds)
                    window, _ = insert_or_get(
                        RateLimitWindow,
                        lookup={
                            "identifier": identifier,
                            "window_start": start,
                            "window_seconds": window_seconds,
                        },
                        defaults={"count": 0},
                    )
                    if window.count >= max_count:
                        retry_at = start + timedelta(seconds=window_seconds)
                        logger.info(
                            "rate_limit.exceeded",
                            identifier=identifier,
                            window_seconds=window_seconds,
                            count=window.count,
                            limit=max_count,
                        )
                        return RateLimitDecision(
                            allowed=False,
                            retry_at=retry_at,
                            window_seconds=window_seconds,
                        )
                    windows.append(window.pk)

                RateLimitWindow.objects.filter(pk__in=windows).update(
                    count=F("count") + 1, updated_at=now
                )
        except DatabaseError as exc:
            logger.warning(
                "rate_limit.storage_error_fail_open",
                identifier=identifier,
                error=str(exc),
            )
            return RateLimitDecision(allowed=True)
        return RateLimitDecision(allowed=True)

    def current_count(
        self, identifier: str, window_seconds: int, now: Optional[datetime] = None
    ) -> int:
        now = now or timezone.now()
        window = RateLimitWindow.objects.filter(
            identifier=identifier,
            window_start=window_start_for(now, window_seconds),
            window_seconds=window_seconds,
        ).first()
        return window.count if window else 0

    def prune(self, older_than: datetime) -> int:
        """Delete windows that ended before *older_than*."""
        deleted, _ = RateLimitWindow.objects.filter(
            window_start__lt=older_than
        ).delete()
        return deleted
