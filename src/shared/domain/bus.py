"""Event bus contracts shared by the state machine and its subscribers.

Publishing is synchronous: ``publish`` returns only after every handler
ran, and a handler exception reaches the publisher.  The state machine
relies on this to leave the outbox row pending when delivery fails.
"""

from __future__ import annotations

from typing import Generic, List, Protocol, Type, TypeVar

from shared.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent, contravariant=True)


class IEventHandler(Protocol, Generic[E]):
    """Reacts to one kind of domain event."""

    def handle(self, event: E) -> None: ...


class IEventBus(Protocol):
    def publish(self, event: DomainEvent) -> None:
        """Dispatch *event* to its handlers, in subscription order."""
        ...

    def subscribe(self, event_class: Type[E], handler: IEventHandler[E]) -> None:
        """Register *handler*; subscribing the same handler twice is a no-op."""
        ...

    def handlers_for(self, event_class: Type[DomainEvent]) -> List[IEventHandler]: ...
