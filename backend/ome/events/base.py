"""
Base type for domain events.

Events are immutable once created and published exactly once per mutation.
Every handler receives the same instance.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    id: uuid.UUID = field(default_factory=uuid.uuid4, kw_only=True)
    occurred_on: datetime = field(default_factory=_now, kw_only=True)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        """JSON-friendly payload for realtime subscribers and logs."""
        payload = {"type": self.event_type, "id": str(self.id), "occurred_on": self.occurred_on.isoformat()}
        for name, value in vars(self).items():
            if name in ("id", "occurred_on"):
                continue
            payload[name] = str(value) if isinstance(value, uuid.UUID) else value
        return payload
