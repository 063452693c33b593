"""Bounded retry for transient storage failures.

``OperationalError`` raised by the database driver (lock wait timeout,
deadlock victim, "database is locked") is translated into
``TransientError``; ``with_transient_retry`` re-runs the whole unit of
work with exponential backoff and re-raises once the budget is spent.

The decorator must wrap *outside* ``transaction.atomic`` so that every
attempt starts a fresh transaction.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from django.conf import settings
from django.db import OperationalError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from modules.core.exceptions import TransientError

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


@contextmanager
def translate_operational_errors(operation: str) -> Iterator[None]:
    """Re-raise driver-level ``OperationalError`` as ``TransientError``."""
    try:
        yield
    except OperationalError as exc:
        raise TransientError(f"{operation}: {exc}") from exc


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "transient.retrying",
        operation=getattr(retry_state.fn, "__qualname__", "unknown"),
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


def _stop_after_configured_attempts(max_attempts: Optional[int]):
    def stop(retry_state: RetryCallState) -> bool:
        attempts = max_attempts or getattr(
            settings, "TRANSIENT_RETRY_ATTEMPTS", DEFAULT_MAX_ATTEMPTS
        )
        return stop_after_attempt(int(attempts))(retry_state)

    return stop


def with_transient_retry(
    max_attempts: Optional[int] = None,
    wait_multiplier: float = 0.05,
    wait_max: float = 2,
):
    """Decorator to retry a unit of work on ``TransientError``.

    The attempt budget defaults to ``settings.TRANSIENT_RETRY_ATTEMPTS``.
    """
    return retry(
        stop=_stop_after_configured_attempts(max_attempts),
        wait=wait_exponential(multiplier=wait_multiplier, max=wait_max),
        retry=retry_if_exception_type(TransientError),
        before_sleep=_log_retry,
        reraise=True,
    )
