"""Notification DRF serializers for API input/output."""

from __future__ import annotations

from rest_framework import serializers

from modules.notifications.constants import SuppressionReason
from modules.notifications.models import NotificationEvent, SuppressionEntry

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class EnqueueNotificationSerializer(serializers.Serializer):
    """Validates an enqueue request."""

    order_id = serializers.UUIDField()
    event_type = serializers.CharField(max_length=100)
    template_key = serializers.CharField(max_length=100)
    recipient = serializers.CharField(
        max_length=254, required=False, allow_null=True, allow_blank=True
    )
    variables = serializers.DictField(required=False, default=dict)


class SuppressRecipientSerializer(serializers.Serializer):
    """Validates a new suppression entry (address or ``@domain``)."""

    recipient = serializers.CharField(max_length=254)
    reason = serializers.ChoiceField(choices=SuppressionReason.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class ReactivateRecipientSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class EnqueueResultSerializer(serializers.Serializer):
    action = serializers.CharField()
    event_id = serializers.UUIDField(allow_null=True)
    dedupe_key = serializers.CharField(allow_null=True)
    reason = serializers.CharField(allow_null=True)


class NotificationEventSerializer(serializers.ModelSerializer):
    """Read serializer for queue rows."""

    class Meta:
        model = NotificationEvent
        fields = [
            "id",
            "order_id",
            "event_type",
            "recipient",
            "template_key",
            "variables",
            "status",
            "retry_count",
            "dedupe_key",
            "scheduled_at",
            "processing_started_at",
            "sent_at",
            "last_error",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class SuppressionEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = SuppressionEntry
        fields = [
            "id",
            "recipient",
            "reason",
            "is_active",
            "notes",
            "reactivated_at",
            "reactivated_by",
            "created_at",
        ]
        read_only_fields = fields
