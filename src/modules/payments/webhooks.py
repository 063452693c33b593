"""Gateway webhook helpers: signature check and payload extraction.

The gateway signs the raw request body with HMAC-SHA512 using the
merchant secret and sends the hex digest in ``X-Paystack-Signature``.
Amounts in the payload are expressed in minor units.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.conf import settings

from modules.payments.constants import MINOR_UNITS_PER_MAJOR
from modules.payments.exceptions import InvalidPaymentRequest, InvalidWebhookSignature


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def verify_signature(body: bytes, signature: Optional[str]) -> None:
    """Raise ``InvalidWebhookSignature`` unless *signature* matches *body*.

    Fails closed when no secret is configured.
    """
    secret = getattr(settings, "PAYMENT_WEBHOOK_SECRET", "")
    if not secret or not signature:
        raise InvalidWebhookSignature("Missing webhook secret or signature.")
    if not hmac.compare_digest(compute_signature(body, secret), signature.strip()):
        raise InvalidWebhookSignature("Webhook signature mismatch.")


@dataclass(frozen=True)
class WebhookCharge:
    event: str
    reference: str
    amount: Decimal
    currency: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)


def parse_charge(payload: Dict[str, Any]) -> WebhookCharge:
    """Extract the charge fields from a gateway event body."""
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
        raise InvalidPaymentRequest("Webhook payload lacks a data object.")
    data = payload["data"]
    reference = data.get("reference")
    if not payload.get("event") or not reference:
        raise InvalidPaymentRequest("Webhook payload lacks event or reference.")
    try:
        amount = Decimal(str(data.get("amount", "0"))) / MINOR_UNITS_PER_MAJOR
    except InvalidOperation:
        raise InvalidPaymentRequest("Webhook amount is not a number.") from None
    return WebhookCharge(
        event=payload["event"],
        reference=str(reference),
        amount=amount,
        currency=data.get("currency"),
        payload=payload,
    )
