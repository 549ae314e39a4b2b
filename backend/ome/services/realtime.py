"""
Per-tenant fan-out of domain events to realtime subscribers.

Each WebSocket connection owns a Subscription (a bounded asyncio.Queue) keyed
by its tenant id. Publishing never blocks: when a subscriber's queue is full
the message is dropped for that subscriber and a warning is logged.

The broadcaster is shared process-wide and only touched from the event loop.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, Set

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class Subscription:
    def __init__(self, broadcaster: "TenantEventBroadcaster", tenant_id: uuid.UUID, max_queue: int):
        self._broadcaster = broadcaster
        self.tenant_id = tenant_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)

    async def get(self) -> Dict[str, Any]:
        return await self.queue.get()

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)


class TenantEventBroadcaster:
    def __init__(self, max_queue: int = DEFAULT_QUEUE_SIZE):
        self._max_queue = max_queue
        self._subscriptions: Dict[uuid.UUID, Set[Subscription]] = defaultdict(set)

    def subscribe(self, tenant_id: uuid.UUID) -> Subscription:
        subscription = Subscription(self, tenant_id, self._max_queue)
        self._subscriptions[tenant_id].add(subscription)
        logger.info("Realtime subscriber added", extra={"tenant_id": str(tenant_id)})
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(subscription.tenant_id)
        if not subscribers:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscriptions[subscription.tenant_id]

    def subscriber_count(self, tenant_id: uuid.UUID) -> int:
        return len(self._subscriptions.get(tenant_id, ()))

    def publish(self, tenant_id: uuid.UUID, message: Dict[str, Any]) -> int:
        """Deliver ``message`` to every subscriber of ``tenant_id``. Returns the delivered count."""
        delivered = 0
        for subscription in list(self._subscriptions.get(tenant_id, ())):
            try:
                subscription.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Realtime subscriber queue full, dropping message",
                    extra={"tenant_id": str(tenant_id)},
                )
        return delivered
