"""User lifecycle events published by UserService."""

import uuid
from dataclasses import dataclass
from typing import Optional

from ome.events.base import DomainEvent


@dataclass(frozen=True)
class UserCreatedEvent(DomainEvent):
    user_id: uuid.UUID
    username: str
    tenant_id: uuid.UUID
    created_by: Optional[str]


@dataclass(frozen=True)
class UserUpdatedEvent(DomainEvent):
    user_id: uuid.UUID
    username: str
    tenant_id: uuid.UUID
    updated_by: Optional[str]


@dataclass(frozen=True)
class UserDeletedEvent(DomainEvent):
    user_id: uuid.UUID
    username: str
    tenant_id: uuid.UUID
    deleted_by: Optional[str]


USER_EVENTS = (UserCreatedEvent, UserUpdatedEvent, UserDeletedEvent)
