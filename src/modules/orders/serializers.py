"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.models import Order, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class TransitionOrderSerializer(serializers.Serializer):
    """Validates a status transition request."""

    target_status = serializers.ChoiceField(choices=OrderStatus.choices)
    payment_status = serializers.ChoiceField(
        choices=PaymentStatus.choices, required=False, allow_null=True
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class CorrectOrderSerializer(serializers.Serializer):
    """Validates an admin correction request."""

    target_status = serializers.ChoiceField(choices=OrderStatus.choices)
    reason = serializers.CharField()


class AssignPaymentReferenceSerializer(serializers.Serializer):
    client_reference = serializers.CharField(
        max_length=100, required=False, allow_null=True, allow_blank=True
    )


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "old_payment_status",
            "new_payment_status",
            "version",
            "actor_id",
            "notes",
            "is_correction",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with their history."""

    status_history = StatusHistorySerializer(many=True, read_only=True)
    expected_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, read_only=True
    )

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "customer_name",
            "customer_email",
            "status",
            "payment_status",
            "total_amount",
            "delivery_fee",
            "expected_amount",
            "payment_reference",
            "version",
            "paid_at",
            "status_changed_at",
            "last_actor_id",
            "created_at",
            "updated_at",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "status",
            "payment_status",
            "total_amount",
            "version",
            "created_at",
        ]
        read_only_fields = fields
