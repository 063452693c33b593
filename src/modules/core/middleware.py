"""Request correlation.

Every request carries an ``X-Request-ID``: the caller's value when
present, a fresh UUID4 otherwise.  The id is bound to the structlog
context so that payment, order and notification log lines emitted while
serving the request can be traced back to it, and echoed on the response.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger(__name__)

REQUEST_ID_META_KEY = "HTTP_X_REQUEST_ID"
REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationIdMiddleware:
    """Binds a correlation id to the logging context of each request."""

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = request.META.get(REQUEST_ID_META_KEY) or str(uuid.uuid4())
        correlation_id_var.set(cid)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=cid)

        logger.info(
            "request.started",
            method=request.method,
            path=request.path,
        )

        response = self.get_response(request)

        logger.info(
            "request.finished",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
        )

        response[REQUEST_ID_HEADER] = cid
        return response
