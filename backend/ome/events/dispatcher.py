"""
In-process domain event dispatcher.

Handlers are registered explicitly at startup, keyed by event type:

    dispatcher = EventDispatcher()
    dispatcher.subscribe(UserCreatedEvent, log_user_event)

publish(event) runs every handler registered for the event's exact type
concurrently and waits for all of them. Handlers are not transactional with
respect to each other: if any handler raises, the others still run to
completion and the first exception is re-raised to the publisher.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Type, TypeVar

from ome.events.base import DomainEvent

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=DomainEvent)
EventHandler = Callable[[E], Awaitable[None]]


class EventDispatcher:
    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: Type[E], handler: EventHandler) -> None:
        if not (isinstance(event_type, type) and issubclass(event_type, DomainEvent)):
            raise TypeError(f"{event_type!r} is not a DomainEvent type")
        self._handlers[event_type].append(handler)

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[EventHandler]:
        return list(self._handlers.get(event_type, ()))

    async def publish(self, event: DomainEvent) -> None:
        """
        Invoke every handler for ``event`` and wait for all of them.

        Raises:
            Exception: The first handler exception, after all handlers finished
        """
        handlers = self.handlers_for(type(event))
        if not handlers:
            return

        results = await asyncio.gather(
            *(handler(event) for handler in handlers),
            return_exceptions=True,
        )

        errors = [result for result in results if isinstance(result, BaseException)]
        if not errors:
            return

        for error in errors:
            logger.error(
                "Event handler failed",
                extra={
                    "event_type": event.event_type,
                    "event_id": str(event.id),
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
            )
        raise errors[0]
