"""
User repository.

Uniqueness rules:
- keycloak_id is globally unique (checked across tenants)
- username and email are unique per tenant among rows that are not deleted

Rules are pre-checked to produce a DuplicateEntity with the offending field;
the partial unique indexes on the table catch the race where two writers pass
the pre-check at the same time.
"""

from typing import List, Optional

from sqlalchemy import select

from ome.models.user import User
from ome.repositories.base_repo import TenantScopedRepository
from ome.repositories.errors import DuplicateEntity


class UserRepository(TenantScopedRepository[User]):
    model = User

    async def get_by_username(self, username: str) -> Optional[User]:
        users = await self.list(User.username == username, limit=1)
        return users[0] if users else None

    async def get_by_email(self, email: str) -> Optional[User]:
        users = await self.list(User.email == email, limit=1)
        return users[0] if users else None

    async def get_by_keycloak_id(self, keycloak_id: str) -> Optional[User]:
        users = await self.list(User.keycloak_id == keycloak_id, limit=1)
        return users[0] if users else None

    async def list_users(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[User]:
        return await self.list(order_by=User.username, limit=limit, offset=offset)

    def _others(self, user: User, *criteria) -> list:
        criteria = list(criteria)
        if user.id is not None:
            criteria.append(User.id != user.id)
        return criteria

    async def _check_unique(self, user: User) -> None:
        if await self.exists(*self._others(user, User.username == user.username)):
            raise DuplicateEntity("User", "username", user.username)

        if await self.exists(*self._others(user, User.email == user.email)):
            raise DuplicateEntity("User", "email", user.email)

        # Global check: keycloak_id is unique across tenants, deleted rows included
        result = await self.session.execute(
            select(User.id).where(*self._others(user, User.keycloak_id == user.keycloak_id)).limit(1)
        )
        if result.first() is not None:
            raise DuplicateEntity("User", "keycloak_id", user.keycloak_id)
