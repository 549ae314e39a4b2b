"""
User Service - business logic for tenant user management.

Handles CRUD for users of the current tenant, role assignment, and event
publication.

Key rules:
- Mutations require OmeAdmin or OmeSuperUser
- Role strings are parsed against RoleType; unknown strings are dropped
- username/email uniqueness is checked per tenant among rows that are not deleted
- Every successful mutation is committed first, then published exactly once
- Delete is logical; the user's roles are soft-deleted with it
"""

import logging
import uuid
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ome.constants.permissions import USER_ADMIN_ROLES, parse_roles
from ome.events.dispatcher import EventDispatcher
from ome.events.user_events import UserCreatedEvent, UserDeletedEvent, UserUpdatedEvent
from ome.models.user import User
from ome.platform.rbac import check_role_or_raise
from ome.platform.tenant_context import RequestContext
from ome.repositories.errors import NotFound
from ome.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class UserService:
    """Service for tenant user CRUD with role checks and events."""

    def __init__(self, session: AsyncSession, context: RequestContext, dispatcher: EventDispatcher):
        self.session = session
        self.context = context
        self.dispatcher = dispatcher
        self.users = UserRepository(session, context)

    # =========================================================================
    # List / Get
    # =========================================================================

    async def list_users(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[User]:
        return await self.users.list_users(limit=limit, offset=offset)

    async def get_user(self, user_id: uuid.UUID) -> User:
        return await self.users.get(user_id)

    async def get_current_user(self) -> User:
        """The stored user record of the caller (matched by Keycloak subject in the current tenant)."""
        user = await self.users.get_by_keycloak_id(self.context.user_id)
        if user is None:
            raise NotFound("User", self.context.user_id)
        return user

    # =========================================================================
    # Mutations
    # =========================================================================

    def _require_admin(self) -> None:
        check_role_or_raise(self.context, USER_ADMIN_ROLES)

    async def create_user(
        self,
        keycloak_id: str,
        username: str,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        roles: Iterable[str] = (),
    ) -> User:
        """
        Create a user in the current tenant.

        Raises:
            AuthenticationError / PermissionDeniedError: Caller not allowed
            TenantNotResolved: No tenant selected
            DuplicateEntity: username, email or keycloak_id already taken
        """
        self._require_admin()

        user = User(
            keycloak_id=keycloak_id,
            username=username,
            email=email,
            first_name=first_name,
            last_name=last_name,
            is_active=True,
        )
        for role in parse_roles(roles):
            user.add_role(role)

        await self.users.add(user)
        await self.session.commit()

        logger.info(
            "User created",
            extra={"user_id": str(user.id), "tenant_id": str(user.tenant_id), "created_by": self.context.user_id},
        )
        await self.dispatcher.publish(
            UserCreatedEvent(
                user_id=user.id,
                username=user.username,
                tenant_id=user.tenant_id,
                created_by=self.context.user_id,
            )
        )
        return user

    async def update_user(
        self,
        user_id: uuid.UUID,
        username: Optional[str] = None,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        is_active: Optional[bool] = None,
        roles: Optional[Iterable[str]] = None,
    ) -> User:
        """
        Update a user. Fields left as None are unchanged; roles, when given,
        replace the current role set.
        """
        self._require_admin()

        user = await self.users.get(user_id)
        if username is not None:
            user.username = username
        if email is not None:
            user.email = email
        if first_name is not None:
            user.first_name = first_name
        if last_name is not None:
            user.last_name = last_name
        if is_active is not None:
            user.is_active = is_active
        if roles is not None:
            user.replace_roles(parse_roles(roles))

        await self.users.update(user)
        await self.session.commit()

        await self.dispatcher.publish(
            UserUpdatedEvent(
                user_id=user.id,
                username=user.username,
                tenant_id=user.tenant_id,
                updated_by=self.context.user_id,
            )
        )
        return user

    async def delete_user(self, user_id: uuid.UUID) -> None:
        self._require_admin()

        user = await self.users.get(user_id)
        user.replace_roles([])
        await self.users.delete(user)
        await self.session.commit()

        logger.info(
            "User deleted",
            extra={"user_id": str(user.id), "tenant_id": str(user.tenant_id), "deleted_by": self.context.user_id},
        )
        await self.dispatcher.publish(
            UserDeletedEvent(
                user_id=user.id,
                username=user.username,
                tenant_id=user.tenant_id,
                deleted_by=self.context.user_id,
            )
        )
