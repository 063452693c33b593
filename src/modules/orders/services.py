"""Order State Machine.

The only component allowed to mutate an order's ``status``,
``payment_status``, ``payment_reference`` and ``version``.  Every entry
point follows the same sequence:

1. lock the order row (``SELECT ... FOR UPDATE``) inside a transaction;
2. validate the requested change against the transition rules;
3. apply it, bump ``version`` by one, stamp actor and timestamps;
4. persist the order, its history row and an ``OrderStatusChanged``
   outbox row in the same transaction;
5. publish the event to the in-process bus inside a savepoint.  Handler
   failures (e.g. the notification queue is unavailable) are logged and
   leave the outbox row pending for replay; they never undo the
   transition.

Repositories and the event bus are constructor-injected so the rules
can be unit-tested against mocks.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.authorization import ActorContext
from modules.core.exceptions import ValidationError
from modules.core.models import AuditLog
from modules.core.retry import with_transient_retry
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.events import OrderStatusChanged, PaymentReferenceAssigned
from modules.orders.exceptions import (
    CorrectionNotAllowed,
    InvalidTransition,
    OrderNotFound,
)
from modules.orders.models import Order
from modules.orders.repositories.interfaces import IOrderRepository
from modules.payments.references import ensure_backend_reference, generate_reference
from shared.domain.bus import IEventBus
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class OrderStateMachine:
    """Owns the authoritative order and payment status."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        event_bus: Optional[IEventBus] = None,
    ) -> None:
        if event_bus is None:
            from shared.infrastructure.bus import event_bus as default_bus

            event_bus = default_bus
        self._order_repo = order_repository
        self._event_bus = event_bus

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: UUID | str) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------

    @with_transient_retry()
    def transition(
        self,
        order_id: UUID | str,
        target_status: str,
        actor: ActorContext,
        payment_status: Optional[str] = None,
        notes: str = "",
    ) -> Order:
        """Move an order to *target_status* (and optionally *payment_status*).

        Returns the order unchanged when it already is in the requested
        state.  Raises ``OrderNotFound``, ``ValidationError`` or
        ``InvalidTransition``.
        """
        return self._transition(order_id, target_status, actor, payment_status, notes)

    @transaction.atomic
    def _transition(
        self,
        order_id: UUID | str,
        target_status: str,
        actor: ActorContext,
        payment_status: Optional[str],
        notes: str,
    ) -> Order:
        _validate_statuses(target_status, payment_status)

        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(
            order_id=str(order.id),
            old_status=order.status,
            new_status=target_status,
            actor=str(actor),
        )

        status_changes = target_status != order.status
        payment_changes = (
            payment_status is not None and payment_status != order.payment_status
        )
        if not status_changes and not payment_changes:
            log.info("order.transition_noop")
            return order

        if status_changes and not order.can_transition_to(target_status):
            log.warning("order.invalid_transition")
            raise InvalidTransition(
                f"Cannot move order {order.order_number} "
                f"from '{order.status}' to '{target_status}'."
            )

        if payment_changes and (
            not order.can_change_payment_to(payment_status)
            or (order.is_terminal and payment_status != PaymentStatus.REFUNDED)
        ):
            log.warning(
                "order.invalid_payment_transition",
                old_payment_status=order.payment_status,
                new_payment_status=payment_status,
            )
            raise InvalidTransition(
                f"Cannot change payment of order {order.order_number} "
                f"from '{order.payment_status}' to '{payment_status}'."
            )

        order = self._apply(order, target_status, actor, payment_status, notes)
        log.info("order.transitioned", version=order.version)
        return order

    # ------------------------------------------------------------------
    # Correction path
    # ------------------------------------------------------------------

    @with_transient_retry()
    def correct(
        self,
        order_id: UUID | str,
        target_status: str,
        actor: ActorContext,
        reason: str,
    ) -> Order:
        """Force an order into *target_status*, backwards moves included.

        Reserved for privileged actors fixing operator mistakes; every
        use is written to the audit log.
        """
        if not actor.is_privileged:
            raise CorrectionNotAllowed(
                f"Actor {actor} is not allowed to correct order status."
            )
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for status corrections.")
        return self._correct(order_id, target_status, actor, reason.strip())

    @transaction.atomic
    def _correct(
        self,
        order_id: UUID | str,
        target_status: str,
        actor: ActorContext,
        reason: str,
    ) -> Order:
        _validate_statuses(target_status, None)

        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        if order.status == target_status:
            return order

        old_status = order.status
        order = self._apply(
            order, target_status, actor, None, reason, is_correction=True
        )
        AuditLog.record(
            "order_status_corrected",
            "order",
            order.id,
            actor_id=actor.actor_id,
            message=reason,
            old_status=old_status,
            new_status=target_status,
            version=order.version,
        )
        logger.warning(
            "order.status_corrected",
            order_id=str(order.id),
            old_status=old_status,
            new_status=target_status,
            actor=str(actor),
        )
        return order

    # ------------------------------------------------------------------
    # Payment reference
    # ------------------------------------------------------------------

    @transaction.atomic
    def assign_payment_reference(
        self,
        order_id: UUID | str,
        actor: ActorContext,
        client_reference: Optional[str] = None,
    ) -> Order:
        """Give the order its payment reference, exactly once.

        Client-supplied values that are not backend-shaped, or that another
        order already owns, are replaced by a server-generated reference.
        Later calls return the order with its existing reference untouched.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")

        if order.payment_reference:
            if client_reference and client_reference != order.payment_reference:
                logger.warning(
                    "order.payment_reference_reassignment_ignored",
                    order_id=str(order.id),
                )
            return order

        reference = ensure_backend_reference(client_reference)
        if self._order_repo.reference_in_use(reference, str(order.id)):
            reference = generate_reference()
            logger.warning(
                "payment.reference_rewritten",
                order_id=str(order.id),
                reason="reference_in_use",
                reference=reference,
            )
        order.assign_payment_reference(reference)
        order.version += 1
        order.last_actor_id = actor.actor_id
        event = PaymentReferenceAssigned(aggregate_id=order.id, reference=reference)
        order.add_domain_event(event)
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            old_status=order.status,
            old_payment_status=order.payment_status,
            actor_id=actor.actor_id,
            notes="payment reference assigned",
        )
        self.publish(event)
        logger.info(
            "order.payment_reference_assigned",
            order_id=str(order.id),
            reference=reference,
        )
        return order

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        order: Order,
        target_status: str,
        actor: ActorContext,
        payment_status: Optional[str],
        notes: str,
        is_correction: bool = False,
    ) -> Order:
        """Mutate a locked order and run the post-transition hooks."""
        now = timezone.now()
        old_status = order.status
        old_payment_status = order.payment_status

        if target_status != old_status:
            order.status = target_status
            order.status_changed_at = now
        if payment_status is not None and payment_status != old_payment_status:
            order.payment_status = payment_status
            if payment_status == PaymentStatus.PAID and order.paid_at is None:
                order.paid_at = now

        order.version += 1
        order.last_actor_id = actor.actor_id

        event = OrderStatusChanged(
            aggregate_id=order.id,
            old_status=old_status,
            new_status=order.status,
            old_payment_status=old_payment_status,
            new_payment_status=order.payment_status,
            actor_id=actor.actor_id,
            version=order.version,
            is_correction=is_correction,
        )
        order.add_domain_event(event)
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            old_status=old_status,
            old_payment_status=old_payment_status,
            actor_id=actor.actor_id,
            notes=notes,
            is_correction=is_correction,
        )

        self.publish(event)
        return order

    def publish(self, event: DomainEvent) -> bool:
        """Run the in-process handlers for *event*.

        Returns ``True`` when every handler succeeded and the outbox row
        was marked published.
        """
        try:
            with transaction.atomic():
                self._event_bus.publish(event)
        except Exception as exc:
            logger.exception(
                "order.post_transition_hook_failed",
                order_id=str(event.aggregate_id),
                event_id=str(event.event_id),
                event_name=event.event_name,
                error=str(exc),
            )
            return False
        self._order_repo.mark_event_published(event.event_id)
        return True


def _validate_statuses(target_status: str, payment_status: Optional[str]) -> None:
    if target_status not in OrderStatus.values:
        raise ValidationError(f"Unknown order status '{target_status}'.")
    if payment_status is not None and payment_status not in PaymentStatus.values:
        raise ValidationError(f"Unknown payment status '{payment_status}'.")
