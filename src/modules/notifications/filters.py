import django_filters

from modules.notifications.models import NotificationEvent


class NotificationEventFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    event_type = django_filters.CharFilter(field_name="event_type")
    template_key = django_filters.CharFilter(field_name="template_key")
    order = django_filters.UUIDFilter(field_name="order_id")
    recipient = django_filters.CharFilter(field_name="recipient", lookup_expr="iexact")
    scheduled_before = django_filters.IsoDateTimeFilter(
        field_name="scheduled_at", lookup_expr="lte"
    )

    class Meta:
        model = NotificationEvent
        fields = [
            "status",
            "event_type",
            "template_key",
            "order",
            "recipient",
            "scheduled_before",
        ]
