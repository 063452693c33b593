"""In-memory event bus implementation.

Handlers run synchronously, in subscription order, inside the caller's
transaction.  A handler exception propagates to the publisher, which
decides whether the failure may be swallowed.
"""

from __future__ import annotations

from typing import Dict, List, Type

import structlog

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    """Simple in-process event bus."""

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def handlers_for(self, event_class: Type[DomainEvent]) -> List[IEventHandler]:
        return list(self._handlers.get(event_class, []))

    def publish(self, event: DomainEvent) -> None:
        for handler in self.handlers_for(type(event)):
            logger.debug(
                "event_bus.dispatch",
                event_name=event.event_name,
                event_id=str(event.event_id),
                handler=type(handler).__name__,
            )
            handler.handle(event)


# Global bus instance (singleton)

event_bus = InMemoryEventBus()
