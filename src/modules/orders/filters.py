import django_filters

from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    payment_status = django_filters.CharFilter(
        field_name="payment_status", lookup_expr="iexact"
    )
    customer = django_filters.UUIDFilter(field_name="customer_id")
    reference = django_filters.CharFilter(field_name="payment_reference")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = [
            "status",
            "payment_status",
            "customer",
            "reference",
            "start_date",
            "end_date",
        ]
