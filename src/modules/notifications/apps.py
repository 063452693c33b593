from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.notifications"
    label = "notifications"

    def ready(self) -> None:
        from modules.notifications.handlers import order_status_notification_handler
        from modules.orders.events import OrderStatusChanged
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderStatusChanged, order_status_notification_handler)
