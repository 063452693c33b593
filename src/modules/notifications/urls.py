"""Notification URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from modules.notifications.views import (
    EnqueueNotificationView,
    NotificationEventViewSet,
    SuppressionViewSet,
)

router = DefaultRouter(trailing_slash=True)
router.register(
    "notifications/events", NotificationEventViewSet, basename="notification-event"
)
router.register(
    "notifications/suppressions", SuppressionViewSet, basename="suppression"
)

urlpatterns = [
    path(
        "notifications/enqueue/",
        EnqueueNotificationView.as_view(),
        name="notification_enqueue",
    ),
    *router.urls,
]
