"""Cross-module HTTP helpers: the health check and domain error mapping."""

import time
from typing import Any, Dict

import structlog
from django.core.cache import cache
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response

from modules.core.exceptions import (
    AmountMismatch,
    Conflict,
    DomainError,
    NotFound,
    TransientError,
    ValidationError,
)
from modules.core.models import EventStatus, OutboxEvent

logger = structlog.get_logger(__name__)


def _timed(check) -> Dict[str, Any]:
    start = time.monotonic()
    details = check() or {}
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - start) * 1000, 2),
        **details,
    }


def _check_database() -> Dict[str, Any]:
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {
        "pending_outbox_events": OutboxEvent.objects.filter(
            status=EventStatus.PENDING
        ).count(),
    }


def _check_cache() -> None:
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("Cache read failed")


def health_check(request: HttpRequest) -> JsonResponse:
    services: Dict[str, Dict[str, Any]] = {}
    overall_healthy = True

    for name, check in (("database", _check_database), ("cache", _check_cache)):
        try:
            services[name] = _timed(check)
        except Exception as exc:
            services[name] = {"status": "down"}
            overall_healthy = False
            logger.error("health.service_down", service=name, error=str(exc))

    outcome = "healthy" if overall_healthy else "unhealthy"
    logger.info("health.checked", status=outcome)

    return JsonResponse(
        {
            "status": outcome,
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=200 if overall_healthy else 503,
    )


def error_response(exc: DomainError, **extra: Any) -> Response:
    """Translate a domain error into its typed HTTP error body."""
    if isinstance(exc, ValidationError):
        http_status = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFound):
        http_status = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, Conflict):
        http_status = status.HTTP_409_CONFLICT
    elif isinstance(exc, AmountMismatch):
        http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, TransientError):
        http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    return Response(
        {"success": False, "error_code": exc.code, "detail": str(exc), **extra},
        status=http_status,
    )


def validation_error_response(errors: Any) -> Response:
    """Typed 400 body for serializer validation failures."""
    return Response(
        {"success": False, "error_code": ValidationError.code, "detail": errors},
        status=status.HTTP_400_BAD_REQUEST,
    )
