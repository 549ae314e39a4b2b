"""
Realtime user events over WebSocket.

    WS /ws/events?access_token=<jwt>[&tenantId=<uuid>]

Browsers cannot set an Authorization header on the upgrade request, so the
token may arrive as the access_token query parameter (accepted only on /ws
paths), falling back to the header or cookie.

The handshake authenticates once, then injects the identity into a
connection-scoped security context (manual override path) that lives for the
whole connection. Only OmeAdmin / OmeSuperUser callers with a resolved tenant
are accepted; they receive every user event of that tenant.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, status

from ome.auth.context import RequestSecurityContext
from ome.auth.middleware import authenticate
from ome.constants.permissions import USER_ADMIN_ROLES
from ome.platform.tenant_context import RequestContext, TenantResolver
from ome.services.realtime import TenantEventBroadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def connection_context(websocket: WebSocket) -> RequestContext:
    """Authenticate the handshake and build the per-connection context."""
    keycloak = getattr(websocket.app.state, "keycloak", None)
    result = await authenticate(websocket, keycloak)

    security = RequestSecurityContext.anonymous()
    if result.security.is_authenticated:
        security.set_user_id(result.security.user_id)
        for role in result.security.roles:
            security.add_role(role)
        security.username = result.security.username
        security.email = result.security.email
        security.tenant_key = result.security.tenant_key

    resolver = TenantResolver.from_connection(websocket, result.security)
    return RequestContext(security, resolver)


async def _forward(websocket: WebSocket, subscription) -> None:
    while True:
        message = await subscription.get()
        await websocket.send_json(message)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/events")
async def user_events(websocket: WebSocket):
    context = await connection_context(websocket)

    if not context.security.is_authenticated:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication required")
        return
    if not context.security.has_any_role(USER_ADMIN_ROLES):
        logger.warning("Realtime subscription denied", extra={"user_id": context.user_id})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Forbidden")
        return
    if context.tenant_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="No tenant selected")
        return

    broadcaster: TenantEventBroadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    subscription = broadcaster.subscribe(context.tenant_id)

    forward = asyncio.create_task(_forward(websocket, subscription))
    disconnect = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        done, _ = await asyncio.wait({forward, disconnect}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task is forward and not task.cancelled() and task.exception() is not None:
                logger.info(
                    "Realtime connection closed while sending",
                    extra={"error_type": type(task.exception()).__name__},
                )
    finally:
        forward.cancel()
        disconnect.cancel()
        subscription.close()
        logger.info("Realtime subscriber removed", extra={"tenant_id": str(context.tenant_id)})
