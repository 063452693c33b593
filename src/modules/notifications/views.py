"""Notification API views.

Operator surface of the queue: enqueue on demand, inspect events,
requeue failed or dead-lettered ones, and manage the suppression list.
Everything here is staff-only; reactivating a suppressed recipient
additionally needs a privileged actor, which the service enforces.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.core.authorization import ActorContext
from modules.core.exceptions import DomainError
from modules.core.pagination import StandardResultsSetPagination
from modules.core.views import error_response, validation_error_response
from modules.notifications.dtos import EnqueueNotificationDTO
from modules.notifications.filters import NotificationEventFilter
from modules.notifications.models import NotificationEvent, SuppressionEntry
from modules.notifications.serializers import (
    EnqueueNotificationSerializer,
    EnqueueResultSerializer,
    NotificationEventSerializer,
    ReactivateRecipientSerializer,
    SuppressionEntrySerializer,
    SuppressRecipientSerializer,
)
from modules.notifications.services import NotificationQueue
from modules.notifications.suppression import SuppressionList


class EnqueueNotificationView(APIView):
    """POST /api/v1/notifications/enqueue/

    ``201`` when a new event was queued, ``200`` for deduplicated or
    skipped requests (the body's ``action`` tells which).
    """

    permission_classes = [IsAdminUser]

    def post(self, request: Request) -> Response:
        serializer = EnqueueNotificationSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            dto = EnqueueNotificationDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return validation_error_response(str(exc))

        try:
            result = NotificationQueue().enqueue(
                dto.order_id,
                dto.event_type,
                dto.recipient,
                dto.template_key,
                dto.variables,
            )
        except DomainError as exc:
            return error_response(exc)

        http_status = (
            status.HTTP_201_CREATED
            if result.action == "created"
            else status.HTTP_200_OK
        )
        return Response(
            EnqueueResultSerializer(result.model_dump()).data, status=http_status
        )


class NotificationEventViewSet(GenericViewSet):
    """Read access to the queue plus the requeue action."""

    queryset = NotificationEvent.objects.all()
    serializer_class = NotificationEventSerializer
    permission_classes = [IsAdminUser]
    pagination_class = StandardResultsSetPagination
    filterset_class = NotificationEventFilter
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    ordering_fields = ["scheduled_at", "created_at", "retry_count"]
    ordering = ["-created_at", "-id"]

    def list(self, request: Request) -> Response:
        """GET /api/v1/notifications/events/"""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/notifications/events/{pk}/"""
        return Response(self.get_serializer(self.get_object()).data)

    @action(detail=True, methods=["post"])
    def requeue(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/notifications/events/{pk}/requeue/"""
        try:
            event = NotificationQueue().requeue(
                pk, ActorContext.from_user(request.user)
            )
        except DomainError as exc:
            return error_response(exc)
        return Response(self.get_serializer(event).data)


class SuppressionViewSet(GenericViewSet):
    """Suppression list: add entries and reactivate recipients."""

    queryset = SuppressionEntry.objects.all()
    serializer_class = SuppressionEntrySerializer
    permission_classes = [IsAdminUser]
    pagination_class = StandardResultsSetPagination

    def list(self, request: Request) -> Response:
        """GET /api/v1/notifications/suppressions/"""
        queryset = self.get_queryset()
        active = request.query_params.get("active")
        if active is not None:
            queryset = queryset.filter(is_active=active.lower() in {"1", "true"})
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(self.get_serializer(page, many=True).data)

    def create(self, request: Request) -> Response:
        """POST /api/v1/notifications/suppressions/"""
        serializer = SuppressRecipientSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)
        data = serializer.validated_data
        try:
            entry, created = SuppressionList().add(
                data["recipient"], data["reason"], notes=data["notes"]
            )
        except DomainError as exc:
            return error_response(exc)
        return Response(
            self.get_serializer(entry).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=True, methods=["post"])
    def reactivate(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/notifications/suppressions/{pk}/reactivate/"""
        serializer = ReactivateRecipientSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)
        try:
            entry = SuppressionList().reactivate(
                pk,
                ActorContext.from_user(request.user),
                notes=serializer.validated_data["notes"],
            )
        except DomainError as exc:
            return error_response(exc)
        return Response(self.get_serializer(entry).data)
