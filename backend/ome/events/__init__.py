from ome.events.base import DomainEvent
from ome.events.dispatcher import EventDispatcher
from ome.events.user_events import UserCreatedEvent, UserDeletedEvent, UserUpdatedEvent

__all__ = [
    "DomainEvent",
    "EventDispatcher",
    "UserCreatedEvent",
    "UserDeletedEvent",
    "UserUpdatedEvent",
]
