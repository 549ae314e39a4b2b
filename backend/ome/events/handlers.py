"""
Default event handlers, registered on the dispatcher at startup.

Usage:
    register_default_handlers(dispatcher, broadcaster)
"""

import logging

from ome.events.dispatcher import EventDispatcher
from ome.events.user_events import USER_EVENTS
from ome.services.realtime import TenantEventBroadcaster

logger = logging.getLogger(__name__)


async def log_user_event(event) -> None:
    logger.info(
        "User event",
        extra={
            "event_type": event.event_type,
            "event_id": str(event.id),
            "user_id": str(event.user_id),
            "tenant_id": str(event.tenant_id),
        },
    )


def broadcast_handler(broadcaster: TenantEventBroadcaster):
    """Build a handler that forwards user events to the event's tenant subscribers."""

    async def handle(event) -> None:
        broadcaster.publish(event.tenant_id, event.to_dict())

    return handle


def register_default_handlers(dispatcher: EventDispatcher, broadcaster: TenantEventBroadcaster) -> None:
    forward = broadcast_handler(broadcaster)
    for event_type in USER_EVENTS:
        dispatcher.subscribe(event_type, log_user_event)
        dispatcher.subscribe(event_type, forward)
