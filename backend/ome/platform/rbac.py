"""
Role-based access control for API routes.

CRITICAL SECURITY REQUIREMENTS:
- RBAC MUST be enforced server-side for every protected endpoint
- Role names are matched exactly against RoleType values; unknown role
  strings on the identity never grant anything

Usage:
    from ome.platform.rbac import require_role, require_authenticated

    @router.post("/api/users")
    async def create_user(context: RequestContext = Depends(require_role(*USER_ADMIN_ROLES))):
        ...
"""

import logging
from typing import Callable, Iterable

from fastapi import Depends

from ome.constants.permissions import RoleType
from ome.platform.errors import AuthenticationError, PermissionDeniedError
from ome.platform.tenant_context import RequestContext, get_request_context

logger = logging.getLogger(__name__)


def check_role_or_raise(context: RequestContext, roles: Iterable[RoleType]) -> None:
    """
    Raise unless the caller is authenticated and holds one of ``roles``.

    Raises:
        AuthenticationError: Anonymous caller (401)
        PermissionDeniedError: Authenticated but missing every role (403)
    """
    roles = list(roles)
    if not context.security.is_authenticated:
        raise AuthenticationError()
    if not context.security.has_any_role(roles):
        # Log detailed info server-side but don't expose to client
        logger.warning(
            "RBAC check failed",
            extra={
                "required": [role.value for role in roles],
                "user_id": context.user_id,
                "tenant_id": str(context.tenant_id) if context.tenant_id else None,
            },
        )
        raise PermissionDeniedError()


def require_authenticated(context: RequestContext = Depends(get_request_context)) -> RequestContext:
    if not context.security.is_authenticated:
        raise AuthenticationError()
    return context


def require_role(*roles: RoleType) -> Callable[..., RequestContext]:
    """Dependency factory: the caller must hold at least one of ``roles``."""

    def dependency(context: RequestContext = Depends(get_request_context)) -> RequestContext:
        check_role_or_raise(context, roles)
        return context

    return dependency
