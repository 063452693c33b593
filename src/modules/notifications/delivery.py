"""Rendering and transport seams of the notification worker.

The worker only knows the two protocols below; the defaults render a
plain-text message and hand it to Django's configured email backend.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Protocol

from django.conf import settings
from django.core.mail import send_mail

from modules.orders.constants import OrderStatus

SUBJECTS: Dict[str, str] = {
    f"order_{OrderStatus.CONFIRMED}": "Your order {order_number} is confirmed",
    f"order_{OrderStatus.PREPARING}": "Your order {order_number} is being prepared",
    f"order_{OrderStatus.READY}": "Your order {order_number} is ready",
    f"order_{OrderStatus.OUT_FOR_DELIVERY}": "Your order {order_number} is on its way",
    f"order_{OrderStatus.DELIVERED}": "Your order {order_number} was delivered",
    f"order_{OrderStatus.CANCELLED}": "Your order {order_number} was cancelled",
    f"order_{OrderStatus.REFUNDED}": "Your order {order_number} was refunded",
}


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str


class TemplateRenderer(Protocol):
    def render(self, template_key: str, variables: Dict[str, Any]) -> RenderedMessage:
        ...


class DeliveryTransport(Protocol):
    def send(self, recipient: str, message: RenderedMessage) -> None:
        """Deliver *message*. Raises on failure."""


class _Defaulting(dict):
    def __missing__(self, key: str) -> str:
        return ""


class PlainTextRenderer:
    """Subject from a fixed table, body from the template variables."""

    def render(self, template_key: str, variables: Dict[str, Any]) -> RenderedMessage:
        values = _Defaulting({k: str(v) for k, v in (variables or {}).items()})
        subject_template = SUBJECTS.get(
            template_key, "Update on your order {order_number}"
        )
        subject = subject_template.format_map(values).strip()

        lines = []
        if values.get("customer_name"):
            lines.append(f"Hi {values['customer_name']},")
            lines.append("")
        if values.get("status"):
            lines.append(
                f"Order {values['order_number']} is now "
                f"{values['status'].replace('_', ' ')}."
            )
        if values.get("total_amount"):
            lines.append(f"Order total: {values['total_amount']}")
        return RenderedMessage(subject=subject, body="\n".join(lines))


class DjangoEmailTransport:
    """Sends through ``django.core.mail`` using ``DEFAULT_FROM_EMAIL``."""

    def send(self, recipient: str, message: RenderedMessage) -> None:
        send_mail(
            message.subject,
            message.body,
            settings.DEFAULT_FROM_EMAIL,
            [recipient],
            fail_silently=False,
        )
