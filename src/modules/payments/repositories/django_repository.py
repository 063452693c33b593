"""Django ORM implementation of the Payment repository.

Transactions are upserted through the dedup store: the unique
``reference`` column decides which concurrent writer creates the row,
every writer then increments ``verification_attempts`` with an ``F()``
expression so no attempt is lost.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from modules.core.dedup import insert_or_get
from modules.core.models import OutboxEvent
from modules.core.retry import translate_operational_errors
from modules.core.serialization import normalize_for_json, serialize_event_payload
from modules.orders.models import Order
from modules.payments.constants import TransactionStatus
from modules.payments.models import PaymentTransaction, SecurityIncident
from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)

OUTBOX_TOPIC = "payments"


class PaymentDjangoRepository(IPaymentRepository):
    """Concrete Payment repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[PaymentTransaction]:
        try:
            return PaymentTransaction.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_reference(self, reference: str) -> Optional[PaymentTransaction]:
        return PaymentTransaction.objects.filter(reference=reference).first()

    @transaction.atomic
    def save(self, entity: PaymentTransaction) -> PaymentTransaction:
        """Persist a transaction and drain its domain events into the outbox."""
        with translate_operational_errors("payment.save"):
            entity.save()
            for event in entity.domain_events:
                OutboxEvent.objects.create(
                    event_id=event.event_id,
                    event_type=event.event_name,
                    aggregate_id=str(event.aggregate_id),
                    payload=serialize_event_payload(event),
                    topic=OUTBOX_TOPIC,
                )
        entity.clear_domain_events()
        return entity

    def register_attempt(
        self,
        order: Order,
        reference: str,
        amount: Decimal,
        currency: str,
        raw_payload: Dict[str, Any],
        status: str = TransactionStatus.PENDING,
    ) -> Tuple[PaymentTransaction, bool]:
        now = timezone.now()
        payload = normalize_for_json(raw_payload or {})
        with translate_operational_errors("payment.register_attempt"):
            txn, created = insert_or_get(
                PaymentTransaction,
                lookup={"reference": reference},
                defaults={
                    "order": order,
                    "amount": amount,
                    "currency": currency,
                    "status": status,
                    "raw_payload": payload,
                },
            )
            update: Dict[str, Any] = {
                "verification_attempts": F("verification_attempts") + 1,
                "last_verified_at": now,
                "raw_payload": payload,
                "amount": amount,
                "currency": currency,
                "updated_at": now,
            }
            if not created and not txn.is_completed:
                update["status"] = status
            PaymentTransaction.objects.filter(pk=txn.pk).update(**update)
            txn.refresh_from_db()

        logger.info(
            "payment.attempt_registered",
            reference=reference,
            order_id=str(order.id),
            created=created,
            attempts=txn.verification_attempts,
        )
        return txn, created

    def has_completed(self, order_id: UUID) -> bool:
        return PaymentTransaction.objects.filter(
            order_id=order_id, status=TransactionStatus.COMPLETED
        ).exists()

    def has_other_completed(self, order_id: UUID, reference: str) -> bool:
        return (
            PaymentTransaction.objects.filter(
                order_id=order_id, status=TransactionStatus.COMPLETED
            )
            .exclude(reference=reference)
            .exists()
        )

    def record_incident(self, **fields: Any) -> SecurityIncident:
        if "details" in fields:
            fields["details"] = normalize_for_json(fields["details"])
        incident = SecurityIncident.objects.create(**fields)
        logger.warning(
            "payment.security_incident_recorded",
            incident_id=str(incident.id),
            incident_type=incident.incident_type,
            reference=incident.reference,
        )
        return incident
