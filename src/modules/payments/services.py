"""Payment Verifier.

Turns a gateway confirmation (webhook delivery or client poll) into at
most one ``pending -> paid`` transition of the owning order.

The whole check-then-act sequence runs while holding the order row
lock, so two near-simultaneous confirmations for the same reference
serialise: the second one finds the order already paid and returns the
cached result.  Amount mismatches abort before anything is written and
are then recorded as security incidents in their own transaction.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.core.authorization import ActorContext, ActorRole
from modules.core.exceptions import AmountMismatch
from modules.core.models import AuditLog
from modules.core.retry import with_transient_retry
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.exceptions import OrderNotFound
from modules.orders.repositories.interfaces import IOrderRepository
from modules.orders.services import OrderStateMachine
from modules.payments.constants import (
    DEFAULT_AMOUNT_TOLERANCE,
    DEFAULT_CURRENCY,
    IncidentSeverity,
    IncidentType,
    TransactionStatus,
)
from modules.payments.dtos import VerificationResult
from modules.payments.events import PaymentVerified
from modules.payments.exceptions import (
    DuplicatePayment,
    InvalidPaymentRequest,
    PaymentForClosedOrder,
)
from modules.payments.models import PaymentTransaction
from modules.payments.references import validate_reference
from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)

GATEWAY_ACTOR = ActorContext(actor_id="payment-verifier", role=ActorRole.GATEWAY)


def amount_tolerance() -> Decimal:
    value = getattr(settings, "PAYMENT_AMOUNT_TOLERANCE", DEFAULT_AMOUNT_TOLERANCE)
    return Decimal(str(value))


def default_currency() -> str:
    return getattr(settings, "PAYMENT_DEFAULT_CURRENCY", DEFAULT_CURRENCY)


class PaymentVerifier:
    """Validates gateway confirmations and drives the state machine."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        payment_repository: IPaymentRepository,
        state_machine: Optional[OrderStateMachine] = None,
    ) -> None:
        self._order_repo = order_repository
        self._payment_repo = payment_repository
        self._state_machine = state_machine or OrderStateMachine(order_repository)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(
        self,
        reference: str,
        claimed_amount: Any,
        gateway_payload: Optional[Dict[str, Any]] = None,
        currency: Optional[str] = None,
        actor: ActorContext = GATEWAY_ACTOR,
    ) -> VerificationResult:
        """Verify a payment and mark its order paid.

        Raises ``ValidationError``, ``OrderNotFound``, ``AmountMismatch``,
        ``PaymentForClosedOrder``, ``DuplicatePayment`` or, after the
        retry budget is spent, ``TransientError``.
        """
        reference = validate_reference(reference)
        amount = _parse_amount(claimed_amount)
        currency = (currency or default_currency()).upper()
        if currency != default_currency():
            raise InvalidPaymentRequest(
                f"Unsupported currency '{currency}', expected '{default_currency()}'."
            )
        payload = gateway_payload or {}

        try:
            return self._verify_with_retry(reference, amount, currency, payload, actor)
        except AmountMismatch as exc:
            self._payment_repo.record_incident(
                incident_type=IncidentType.AMOUNT_MISMATCH,
                severity=IncidentSeverity.CRITICAL,
                reference=reference,
                order_id=exc.order_id,
                expected_amount=exc.expected,
                received_amount=exc.received,
                details={
                    "currency": currency,
                    "tolerance": amount_tolerance(),
                    "gateway_payload": payload,
                },
            )
            raise
        except PaymentForClosedOrder as exc:
            self._payment_repo.record_incident(
                incident_type=IncidentType.CLOSED_ORDER_PAYMENT,
                severity=IncidentSeverity.HIGH,
                reference=reference,
                order_id=exc.order_id,
                received_amount=amount,
                details={
                    "currency": currency,
                    "order_status": exc.order_status,
                    "gateway_payload": payload,
                },
            )
            raise

    @with_transient_retry()
    def _verify_with_retry(
        self,
        reference: str,
        amount: Decimal,
        currency: str,
        payload: Dict[str, Any],
        actor: ActorContext,
    ) -> VerificationResult:
        return self._verify_once(reference, amount, currency, payload, actor)

    @transaction.atomic
    def _verify_once(
        self,
        reference: str,
        amount: Decimal,
        currency: str,
        payload: Dict[str, Any],
        actor: ActorContext,
    ) -> VerificationResult:
        log = logger.bind(reference=reference, claimed_amount=str(amount))

        order = self._order_repo.get_by_reference_for_update(reference)
        if order is None:
            log.warning("payment.order_not_found")
            raise OrderNotFound(f"No order owns payment reference {reference}.")

        log = log.bind(order_id=str(order.id))

        if order.is_paid:
            log.info("payment.already_verified")
            existing = self._payment_repo.get_by_reference(reference)
            return VerificationResult.from_order(
                order,
                reference,
                already_verified=True,
                transaction_id=existing.id if existing else None,
            )

        if order.is_terminal:
            log.warning("payment.closed_order", order_status=order.status)
            raise PaymentForClosedOrder(
                f"Order {order.order_number} is {order.status}; payment not applied.",
                order_id=order.id,
                order_status=order.status,
            )

        expected = order.expected_amount
        if abs(amount - expected) > amount_tolerance():
            log.error("payment.amount_mismatch", expected_amount=str(expected))
            raise AmountMismatch(reference, expected, amount, order_id=order.id)

        txn, _ = self._payment_repo.register_attempt(
            order, reference, amount, currency, payload
        )
        if self._payment_repo.has_other_completed(order.id, reference):
            log.error("payment.duplicate_completed_transaction")
            raise DuplicatePayment(
                f"Order {order.order_number} already has a completed payment."
            )

        target = (
            order.status
            if order.is_at_or_beyond(OrderStatus.CONFIRMED)
            else OrderStatus.CONFIRMED
        )
        updated = self._state_machine.transition(
            order.id,
            target,
            actor,
            payment_status=PaymentStatus.PAID,
            notes=f"payment verified ({reference})",
        )

        txn.status = TransactionStatus.COMPLETED
        txn.verified_at = txn.last_verified_at
        event = PaymentVerified(
            aggregate_id=txn.id,
            order_id=order.id,
            reference=reference,
            amount=amount,
            currency=currency,
        )
        txn.add_domain_event(event)
        self._payment_repo.save(txn)
        self._state_machine.publish(event)

        log.info("payment.verified", version=updated.version)
        return VerificationResult.from_order(
            updated, reference, transaction_id=txn.id
        )

    # ------------------------------------------------------------------
    # Gateway failure
    # ------------------------------------------------------------------

    @with_transient_retry()
    @transaction.atomic
    def record_failure(
        self,
        reference: str,
        gateway_payload: Optional[Dict[str, Any]] = None,
        actor: ActorContext = GATEWAY_ACTOR,
    ) -> VerificationResult:
        """Record a failed charge. Never downgrades an already paid order."""
        reference = validate_reference(reference)
        payload = gateway_payload or {}

        order = self._order_repo.get_by_reference_for_update(reference)
        if order is None:
            raise OrderNotFound(f"No order owns payment reference {reference}.")

        if order.is_paid:
            logger.info("payment.failure_ignored_for_paid_order", reference=reference)
            return VerificationResult.from_order(
                order, reference, already_verified=True
            )

        txn, _ = self._payment_repo.register_attempt(
            order,
            reference,
            order.expected_amount,
            default_currency(),
            payload,
            status=TransactionStatus.FAILED,
        )
        if order.payment_status == PaymentStatus.PENDING and not order.is_terminal:
            order = self._state_machine.transition(
                order.id,
                order.status,
                actor,
                payment_status=PaymentStatus.FAILED,
                notes=f"payment failed ({reference})",
            )
        logger.warning("payment.failed", reference=reference, order_id=str(order.id))
        return VerificationResult.from_order(
            order, reference, success=False, transaction_id=txn.id
        )

    # ------------------------------------------------------------------
    # Backfill
    # ------------------------------------------------------------------

    @with_transient_retry()
    @transaction.atomic
    def backfill(
        self, order_id: UUID | str, actor: ActorContext
    ) -> Optional[PaymentTransaction]:
        """Create the missing completed transaction of a paid order.

        Returns ``None`` when there is nothing to repair (the order is
        not paid, has no reference, or already has a completed
        transaction).
        """
        order = self._order_repo.get_for_update(str(order_id))
        if order is None or not order.is_paid or not order.payment_reference:
            return None
        if self._payment_repo.has_completed(order.id):
            return None

        now = timezone.now()
        reference = order.payment_reference
        payload = {
            "backfill": True,
            "backfill_timestamp": now,
            "original_order_status": order.status,
            "original_payment_status": order.payment_status,
        }
        txn, created = self._payment_repo.register_attempt(
            order,
            reference,
            order.expected_amount,
            default_currency(),
            payload,
            status=TransactionStatus.COMPLETED,
        )
        txn.is_backfilled = True
        txn.verified_at = order.paid_at or now
        event = PaymentVerified(
            aggregate_id=txn.id,
            order_id=order.id,
            reference=reference,
            amount=txn.amount,
            currency=txn.currency,
            is_backfilled=True,
        )
        txn.add_domain_event(event)
        self._payment_repo.save(txn)
        self._state_machine.publish(event)

        AuditLog.record(
            "payment_backfilled",
            "payment_transaction",
            txn.id,
            actor_id=actor.actor_id,
            message="Completed transaction backfilled for a paid order.",
            order_id=order.id,
            reference=reference,
            amount=txn.amount,
            created=created,
        )
        logger.warning(
            "payment.backfilled",
            order_id=str(order.id),
            reference=reference,
            created=created,
        )
        return txn


def _parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidPaymentRequest(f"Amount '{value}' is not a number.") from None
    if not amount.is_finite() or amount <= 0:
        raise InvalidPaymentRequest("Amount must be a positive number.")
    return amount
