"""Payment API views.

Exposes the ``PaymentVerifier`` via HTTP.  Domain exceptions are caught
and translated into typed error bodies
``{"success": false, "error_code": ..., "detail": ...}``; anything else
propagates and surfaces as an internal error.
"""

from __future__ import annotations

import json

import structlog
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from modules.core.exceptions import DomainError, TransientError, ValidationError
from modules.core.views import error_response, validation_error_response
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.payments.constants import (
    WEBHOOK_FAILURE_EVENTS,
    WEBHOOK_SIGNATURE_HEADER,
    WEBHOOK_SUCCESS_EVENTS,
    IncidentSeverity,
    IncidentType,
)
from modules.payments.dtos import VerifyPaymentDTO
from modules.payments.exceptions import InvalidWebhookSignature
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.serializers import (
    VerificationResultSerializer,
    VerifyPaymentSerializer,
)
from modules.payments.services import PaymentVerifier
from modules.payments.webhooks import parse_charge, verify_signature

logger = structlog.get_logger(__name__)


def build_verifier() -> PaymentVerifier:
    return PaymentVerifier(
        order_repository=OrderDjangoRepository(),
        payment_repository=PaymentDjangoRepository(),
    )


class VerifyPaymentView(APIView):
    """POST /api/v1/payments/verify/

    Client-side poll after checkout.  The amount check makes the
    endpoint safe to expose without authentication.
    """

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payment_verification"

    def post(self, request: Request) -> Response:
        serializer = VerifyPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            dto = VerifyPaymentDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return validation_error_response(str(exc))

        try:
            result = build_verifier().verify(
                dto.reference,
                dto.amount,
                gateway_payload=dto.raw_payload,
                currency=dto.currency,
            )
        except DomainError as exc:
            return error_response(exc)

        return Response(
            VerificationResultSerializer(result.model_dump()).data,
            status=status.HTTP_200_OK,
        )


class PaymentWebhookView(APIView):
    """POST /api/v1/payments/webhook/

    Gateway callback authenticated by its body signature.  Handled
    business outcomes answer ``200`` so the gateway stops redelivering;
    transient failures answer ``503`` so it retries.
    """

    permission_classes = [AllowAny]
    authentication_classes: list = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payment_webhook"

    def post(self, request: Request) -> Response:
        body = request.body
        try:
            verify_signature(body, request.META.get(WEBHOOK_SIGNATURE_HEADER))
        except InvalidWebhookSignature as exc:
            PaymentDjangoRepository().record_incident(
                incident_type=IncidentType.INVALID_SIGNATURE,
                severity=IncidentSeverity.HIGH,
                details={
                    "reason": str(exc),
                    "remote_addr": request.META.get("REMOTE_ADDR", ""),
                },
            )
            return Response(
                {"detail": "Invalid signature."},
                status=status.HTTP_401_UNAUTHORIZED,
            )

        try:
            payload = json.loads(body or b"{}")
            charge = parse_charge(payload)
        except (ValueError, ValidationError) as exc:
            return Response(
                {"detail": f"Malformed webhook payload: {exc}"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        log = logger.bind(reference=charge.reference, gateway_event=charge.event)
        verifier = build_verifier()
        try:
            if charge.event in WEBHOOK_SUCCESS_EVENTS:
                result = verifier.verify(
                    charge.reference,
                    charge.amount,
                    gateway_payload=charge.payload,
                    currency=charge.currency,
                )
            elif charge.event in WEBHOOK_FAILURE_EVENTS:
                result = verifier.record_failure(
                    charge.reference, gateway_payload=charge.payload
                )
            else:
                log.info("payment.webhook_ignored")
                return Response({"received": True}, status=status.HTTP_200_OK)
        except TransientError as exc:
            return error_response(exc)
        except DomainError as exc:
            log.warning("payment.webhook_rejected", error_code=exc.code)
            return Response(
                {"received": True, "success": False, "error_code": exc.code},
                status=status.HTTP_200_OK,
            )

        return Response(
            {"received": True, **VerificationResultSerializer(result.model_dump()).data},
            status=status.HTTP_200_OK,
        )
