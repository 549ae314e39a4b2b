"""
Per-request tenant resolution and the request context object.

CRITICAL SECURITY REQUIREMENTS:
- One TenantResolver and one RequestContext per request. Never shared.
- Resolution order (first match wins):
    1. tenant claim of the validated token
    2. query parameter ``tenantId``
    3. header ``X-TenantId``
    4. unresolved (None): tenant-scoped reads return nothing
- Resolution runs once and is memoised for the rest of the request.
  set_tenant_id() is the explicit override used by internal pipeline stages;
  it re-pins the value for the remainder of the request.

RequestContext bundles the caller identity (RequestSecurityContext) and the
TenantResolver. It is stored on ``request.state.request_context`` by the
authentication middleware and passed explicitly into repositories and services.
"""

import logging
import uuid
from typing import Optional, Union

from fastapi import Request
from starlette.requests import HTTPConnection

from ome.auth.context import RequestSecurityContext
from ome.auth.jwt import parse_uuid

logger = logging.getLogger(__name__)

TENANT_QUERY_PARAM = "tenantId"
TENANT_HEADER = "X-TenantId"

SYSTEM_USER_ID = "system"


class TenantResolver:
    """Resolve-once tenant state machine for a single request."""

    def __init__(
        self,
        claim: Optional[str] = None,
        query: Optional[str] = None,
        header: Optional[str] = None,
    ):
        self._candidates = (
            ("claim", claim),
            ("query", query),
            ("header", header),
        )
        self._resolved = False
        self._tenant_id: Optional[uuid.UUID] = None
        self._source: Optional[str] = None

    @classmethod
    def from_connection(
        cls,
        connection: HTTPConnection,
        security: Optional[RequestSecurityContext] = None,
    ) -> "TenantResolver":
        claim = None
        if security is not None and security.tenant_id is not None:
            claim = str(security.tenant_id)
        return cls(
            claim=claim,
            query=connection.query_params.get(TENANT_QUERY_PARAM),
            header=connection.headers.get(TENANT_HEADER),
        )

    @classmethod
    def fixed(cls, tenant_id: Optional[uuid.UUID]) -> "TenantResolver":
        resolver = cls()
        if tenant_id is not None:
            resolver.set_tenant_id(tenant_id)
        return resolver

    def resolve(self) -> Optional[uuid.UUID]:
        if self._resolved:
            return self._tenant_id

        for source, value in self._candidates:
            if not value:
                continue
            tenant_id = parse_uuid(value)
            if tenant_id is None:
                logger.info("Ignoring malformed tenant id", extra={"source": source})
                continue
            self._tenant_id = tenant_id
            self._source = source
            break

        self._resolved = True
        return self._tenant_id

    @property
    def tenant_id(self) -> Optional[uuid.UUID]:
        return self.resolve()

    @property
    def source(self) -> Optional[str]:
        """Where the tenant came from: claim, query, header, override or None."""
        self.resolve()
        return self._source

    @property
    def is_resolved(self) -> bool:
        return self.resolve() is not None

    def set_tenant_id(self, tenant_id: Union[uuid.UUID, str]) -> None:
        parsed = parse_uuid(tenant_id)
        if parsed is None:
            raise ValueError(f"Invalid tenant id: {tenant_id!r}")
        self._tenant_id = parsed
        self._source = "override"
        self._resolved = True


class RequestContext:
    """
    Everything request-scoped that the data and service layers need.

    Usage:
        context = get_request_context(request)
        repo = UserRepository(session, context)
    """

    def __init__(self, security: RequestSecurityContext, tenant: TenantResolver):
        self.security = security
        self.tenant = tenant

    @classmethod
    def anonymous(cls) -> "RequestContext":
        return cls(RequestSecurityContext.anonymous(), TenantResolver())

    @classmethod
    def system(cls, tenant_id: Optional[uuid.UUID] = None) -> "RequestContext":
        """Context for internal jobs (no caller, audit stamps use SYSTEM_USER_ID)."""
        security = RequestSecurityContext()
        security.set_user_id(SYSTEM_USER_ID)
        return cls(security, TenantResolver.fixed(tenant_id))

    @property
    def tenant_id(self) -> Optional[uuid.UUID]:
        return self.tenant.resolve()

    @property
    def user_id(self) -> Optional[str]:
        return self.security.user_id

    def __repr__(self) -> str:
        return f"RequestContext(user_id={self.user_id}, tenant_id={self.tenant_id})"


def get_request_context(request: Request) -> RequestContext:
    """
    FastAPI dependency returning the context set by the authentication middleware.

    Falls back to an anonymous context when the middleware did not run
    (public routes, tests mounting a bare router).
    """
    context = getattr(request.state, "request_context", None)
    if context is None:
        context = RequestContext.anonymous()
        request.state.request_context = context
    return context
