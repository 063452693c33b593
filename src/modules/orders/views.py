"""Order API views.

Exposes the ``OrderStateMachine`` via HTTP using a DRF ViewSet.
Domain exceptions are caught and translated into typed error bodies;
the view never swallows generic exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.authorization import ActorContext
from modules.core.exceptions import DomainError
from modules.core.pagination import StandardResultsSetPagination
from modules.core.views import error_response, validation_error_response
from modules.orders.dtos import (
    AssignPaymentReferenceDTO,
    CorrectOrderDTO,
    TransitionOrderDTO,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    AssignPaymentReferenceSerializer,
    CorrectOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    TransitionOrderSerializer,
)
from modules.orders.services import OrderStateMachine


class OrderViewSet(GenericViewSet):
    """ViewSet for order reads and state machine operations.

    Does **not** extend ``ModelViewSet``: every mutation goes through
    ``OrderStateMachine``, which owns status, payment status,
    payment reference and version.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    search_fields = ["order_number", "customer_email", "payment_reference"]
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._state_machine = OrderStateMachine(
            order_repository=OrderDjangoRepository()
        )

    def get_permissions(self):
        if self.action in {"transition", "correct", "list"}:
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get_throttles(self) -> list[BaseThrottle]:
        """Define escopos de throttling por ação."""
        if self.action in {"transition", "correct"}:
            self.throttle_scope = "order_transition"
        elif self.action in {"list", "retrieve"}:
            self.throttle_scope = "order_listing"
        else:
            self.throttle_scope = None
        return super().get_throttles()

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/"""
        queryset = self.filter_queryset(self.get_queryset())
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._state_machine.get_order(pk)
        except DomainError as exc:
            return error_response(exc)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def transition(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/transition/"""
        serializer = TransitionOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            dto = TransitionOrderDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return validation_error_response(str(exc))

        try:
            self._state_machine.transition(
                pk,
                dto.target_status,
                ActorContext.from_user(request.user),
                payment_status=dto.payment_status,
                notes=dto.notes,
            )
            order = self._state_machine.get_order(pk)
        except DomainError as exc:
            return error_response(exc)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def correct(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/correct/

        Backwards moves for fixing operator mistakes; superusers only.
        """
        serializer = CorrectOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            dto = CorrectOrderDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return validation_error_response(str(exc))

        try:
            self._state_machine.correct(
                pk,
                dto.target_status,
                ActorContext.from_user(request.user),
                reason=dto.reason,
            )
            order = self._state_machine.get_order(pk)
        except DomainError as exc:
            return error_response(exc)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="payment-reference")
    def payment_reference(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/payment-reference/

        Idempotent: the first call assigns the reference, later calls
        return it unchanged.
        """
        serializer = AssignPaymentReferenceSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            dto = AssignPaymentReferenceDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return validation_error_response(str(exc))

        try:
            order = self._state_machine.assign_payment_reference(
                pk,
                ActorContext.from_user(request.user),
                client_reference=dto.client_reference,
            )
        except DomainError as exc:
            return error_response(exc)
        return Response(
            {
                "order_id": str(order.id),
                "payment_reference": order.payment_reference,
                "expected_amount": str(order.expected_amount),
                "version": order.version,
            }
        )
