"""Payment DRF serializers for API input validation."""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers


class VerifyPaymentSerializer(serializers.Serializer):
    """Validates a payment verification request."""

    reference = serializers.CharField(max_length=100, trim_whitespace=True)
    amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, min_value=Decimal("0.01")
    )
    currency = serializers.CharField(
        max_length=3, min_length=3, required=False, allow_null=True
    )
    raw_payload = serializers.DictField(required=False, default=dict)


class VerificationResultSerializer(serializers.Serializer):
    """Shapes a ``VerificationResult`` for API responses."""

    success = serializers.BooleanField()
    order_id = serializers.UUIDField()
    order_number = serializers.CharField()
    status = serializers.CharField()
    payment_status = serializers.CharField()
    reference = serializers.CharField()
    version = serializers.IntegerField()
    already_verified = serializers.BooleanField()
    transaction_id = serializers.UUIDField(allow_null=True)
