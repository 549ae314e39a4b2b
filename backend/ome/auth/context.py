"""
Request-scoped security context (the caller's identity).

Two ways to populate it:
- Principal path: the authentication middleware builds it from a validated
  token via build_identity().
- Manual override: set_user_id() / add_role(), used where the transport cannot
  carry a full authentication handshake (realtime channels) and identity is
  injected by an upstream HTTP authentication step.

is_in_role() checks the union of both role sets and is False for an
unauthenticated caller. is_authenticated is True if
either the principal is authenticated or a manual user id has been set.

SECURITY: one instance per request or connection. Never share across requests.
"""

import uuid
from typing import FrozenSet, Iterable, Optional, Set, Union

from ome.constants.permissions import RoleType, is_known_role


class RequestSecurityContext:
    """Identity of the caller for one request."""

    def __init__(
        self,
        user_id: Optional[str] = None,
        username: Optional[str] = None,
        email: Optional[str] = None,
        roles: Iterable[str] = (),
        tenant_id: Optional[uuid.UUID] = None,
        tenant_key: Optional[str] = None,
        authenticated: bool = False,
    ):
        self._principal_user_id = user_id
        self.username = username
        self.email = email
        self._principal_roles: FrozenSet[str] = frozenset(roles)
        self.tenant_id = tenant_id
        # Tenant identifier taken from the groups claim (e.g. "acme-corp")
        self.tenant_key = tenant_key
        self._principal_authenticated = authenticated and bool(user_id)

        self._manual_user_id: Optional[str] = None
        self._manual_roles: Set[str] = set()

    @classmethod
    def anonymous(cls) -> "RequestSecurityContext":
        return cls()

    @property
    def user_id(self) -> Optional[str]:
        """Manually injected user id wins over the principal's subject."""
        return self._manual_user_id or self._principal_user_id

    @property
    def roles(self) -> FrozenSet[str]:
        return self._principal_roles | frozenset(self._manual_roles)

    @property
    def is_authenticated(self) -> bool:
        return self._principal_authenticated or self._manual_user_id is not None

    def set_user_id(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id cannot be empty")
        self._manual_user_id = user_id

    def add_role(self, role: Union[str, RoleType]) -> None:
        self._manual_roles.add(role.value if isinstance(role, RoleType) else role)

    def is_in_role(self, role: Union[str, RoleType]) -> bool:
        """
        Check role membership (exact, case-sensitive).

        Only strings equal to a RoleType value can ever grant a permission;
        unknown strings are kept on the identity but match nothing.
        """
        name = role.value if isinstance(role, RoleType) else role
        return self.is_authenticated and is_known_role(name) and name in self.roles

    def has_any_role(self, roles: Iterable[Union[str, RoleType]]) -> bool:
        return any(self.is_in_role(role) for role in roles)

    def __repr__(self) -> str:
        return (
            f"RequestSecurityContext(user_id={self.user_id}, "
            f"authenticated={self.is_authenticated}, tenant_id={self.tenant_id})"
        )
