"""Unit tests for webhook signature checks and payload parsing."""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.payments.exceptions import InvalidPaymentRequest, InvalidWebhookSignature
from modules.payments.webhooks import compute_signature, parse_charge, verify_signature

pytestmark = pytest.mark.unit

BODY = b'{"event":"charge.success","data":{"reference":"txn_x","amount":500000}}'


class TestVerifySignature:
    def test_valid_signature(self, settings):
        settings.PAYMENT_WEBHOOK_SECRET = "whsec_unit"
        verify_signature(BODY, compute_signature(BODY, "whsec_unit"))

    def test_tampered_body(self, settings):
        settings.PAYMENT_WEBHOOK_SECRET = "whsec_unit"
        signature = compute_signature(BODY, "whsec_unit")
        with pytest.raises(InvalidWebhookSignature):
            verify_signature(BODY.replace(b"500000", b"100"), signature)

    def test_missing_signature(self, settings):
        settings.PAYMENT_WEBHOOK_SECRET = "whsec_unit"
        with pytest.raises(InvalidWebhookSignature):
            verify_signature(BODY, None)

    def test_fails_closed_without_secret(self, settings):
        settings.PAYMENT_WEBHOOK_SECRET = ""
        with pytest.raises(InvalidWebhookSignature):
            verify_signature(BODY, compute_signature(BODY, ""))


class TestParseCharge:
    def test_amount_is_converted_from_minor_units(self):
        charge = parse_charge(
            {
                "event": "charge.success",
                "data": {"reference": "txn_x", "amount": 500000, "currency": "NGN"},
            }
        )
        assert charge.event == "charge.success"
        assert charge.reference == "txn_x"
        assert charge.amount == Decimal("5000")
        assert charge.currency == "NGN"

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"event": "charge.success"},
            {"event": "charge.success", "data": "nope"},
            {"event": "charge.success", "data": {"amount": 100}},
            {"data": {"reference": "txn_x", "amount": 100}},
            {"event": "charge.success", "data": {"reference": "txn_x", "amount": "ten"}},
        ],
    )
    def test_malformed_payloads(self, payload):
        with pytest.raises(InvalidPaymentRequest):
            parse_charge(payload)
