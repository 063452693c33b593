"""Backend-only payment references.

Format: ``txn_<base36 millisecond timestamp>_<16 hex chars of randomness>``.
The timestamp keeps references roughly sortable; the 64 random bits make
collisions practically impossible.  Anything a client sends that does not
match this shape is untrusted and gets replaced server-side.
"""

from __future__ import annotations

import re
import secrets
import time
from typing import Optional

import structlog

from modules.core.exceptions import ValidationError

logger = structlog.get_logger(__name__)

REFERENCE_PREFIX = "txn"
REFERENCE_RANDOM_BYTES = 8
REFERENCE_MAX_LENGTH = 100
REFERENCE_PATTERN = re.compile(r"^txn_[0-9a-z]{6,16}_[0-9a-f]{16}$")

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("Only non-negative integers can be encoded.")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_reference() -> str:
    """Return a fresh, collision-resistant payment reference."""
    timestamp = to_base36(time.time_ns() // 1_000_000)
    suffix = secrets.token_hex(REFERENCE_RANDOM_BYTES)
    return f"{REFERENCE_PREFIX}_{timestamp}_{suffix}"


def is_backend_reference(value: Optional[str]) -> bool:
    return bool(value) and REFERENCE_PATTERN.fullmatch(value.strip()) is not None


def validate_reference(value: Optional[str]) -> str:
    """Return the stripped reference or raise ``ValidationError``."""
    if value is None or not str(value).strip():
        raise ValidationError("Payment reference is required.")
    reference = str(value).strip()
    if len(reference) > REFERENCE_MAX_LENGTH or not REFERENCE_PATTERN.fullmatch(
        reference
    ):
        raise ValidationError("Payment reference is malformed.")
    return reference


def ensure_backend_reference(client_value: Optional[str] = None) -> str:
    """Keep a well-formed reference, rewrite anything else server-side."""
    if client_value and is_backend_reference(client_value):
        return client_value.strip()
    reference = generate_reference()
    if client_value:
        logger.warning(
            "payment.reference_rewritten",
            client_reference_length=len(client_value),
            reference=reference,
        )
    return reference
