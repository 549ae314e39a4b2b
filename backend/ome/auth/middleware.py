"""
Authentication middleware: bearer token -> request context.

For every HTTP request:
1. Take the token from the Authorization header or the access_token cookie.
   On realtime paths (/ws/...) the access_token query parameter is accepted
   first, since browsers cannot set headers on a WebSocket upgrade.
2. Validate it against the Keycloak JWKS.
3. If it is missing or invalid, try ONE refresh with the refresh_token cookie.
   A refreshed token is written back to the access_token cookie.
4. Decode claims (decode-only, the token is trusted at this point), build the
   identity and the tenant resolver, and store a RequestContext on
   request.state.request_context.

Any failure leaves the request anonymous rather than rejecting it; routes
decide via RBAC dependencies whether anonymous callers get 401/403.

WebSocket connections are not seen by HTTP middleware; realtime routes call
authenticate() themselves with the same rules.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import Request
from starlette.requests import HTTPConnection

from ome.auth.context import RequestSecurityContext
from ome.auth.exceptions import ExchangeFailed, MalformedToken, UpstreamUnavailable
from ome.auth.jwt import build_identity, tenant_from_groups
from ome.auth.keycloak_client import KeycloakClient
from ome.platform.logging import reset_log_tenant, set_log_tenant
from ome.platform.tenant_context import RequestContext, TenantResolver

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"
TENANT_COOKIE = "tenant_id"
REALTIME_PATH_PREFIX = "/ws"
REALTIME_TOKEN_PARAM = "access_token"


@dataclass
class AuthResult:
    security: RequestSecurityContext
    refreshed_token: Optional[str] = None
    expires_at: Optional[datetime] = None


def is_realtime_path(path: str) -> bool:
    return path == REALTIME_PATH_PREFIX or path.startswith(REALTIME_PATH_PREFIX + "/")


def extract_token(connection: HTTPConnection) -> Optional[str]:
    if is_realtime_path(connection.url.path):
        token = connection.query_params.get(REALTIME_TOKEN_PARAM)
        if token:
            return token

    authorization = connection.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token

    return connection.cookies.get(ACCESS_TOKEN_COOKIE) or None


async def _refresh_once(connection: HTTPConnection, keycloak: KeycloakClient) -> Optional[str]:
    refresh_token = connection.cookies.get(REFRESH_TOKEN_COOKIE)
    if not refresh_token:
        return None
    try:
        return await keycloak.refresh_token(refresh_token)
    except (ExchangeFailed, UpstreamUnavailable) as e:
        logger.info(
            "Token refresh failed, continuing anonymously",
            extra={"error_code": e.error_code, "path": connection.url.path},
        )
        return None


async def authenticate(connection: HTTPConnection, keycloak: Optional[KeycloakClient]) -> AuthResult:
    """Resolve the caller identity for an HTTP request or WebSocket handshake."""
    if keycloak is None:
        return AuthResult(RequestSecurityContext.anonymous())

    token = extract_token(connection)
    refreshed = None
    if not token or not await keycloak.validate(token):
        token = refreshed = await _refresh_once(connection, keycloak)
    if not token:
        return AuthResult(RequestSecurityContext.anonymous())

    try:
        info = keycloak.token_info(token)
        groups_tenant = tenant_from_groups(keycloak.claims(token))
    except MalformedToken:
        logger.warning("Undecodable token after validation", extra={"path": connection.url.path})
        return AuthResult(RequestSecurityContext.anonymous())

    return AuthResult(
        security=build_identity(info, groups_tenant),
        refreshed_token=refreshed,
        expires_at=info.expires_at,
    )


def build_request_context(connection: HTTPConnection, security: RequestSecurityContext) -> RequestContext:
    return RequestContext(security, TenantResolver.from_connection(connection, security))


class AuthenticationMiddleware:
    """
    HTTP middleware establishing the per-request RequestContext.

    Registered with app.middleware("http")(AuthenticationMiddleware()).
    The Keycloak client is read from app.state.keycloak (None when the
    identity provider is not configured).
    """

    async def __call__(self, request: Request, call_next):
        keycloak = getattr(request.app.state, "keycloak", None)
        result = await authenticate(request, keycloak)

        context = build_request_context(request, result.security)
        request.state.request_context = context

        log_token = set_log_tenant(context.tenant_id)
        try:
            response = await call_next(request)
        finally:
            reset_log_tenant(log_token)

        if result.refreshed_token:
            response.set_cookie(
                ACCESS_TOKEN_COOKIE,
                result.refreshed_token,
                httponly=True,
                secure=request.url.scheme == "https",
                samesite="lax",
                expires=result.expires_at,
                path="/",
            )
        return response
