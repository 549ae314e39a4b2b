"""
Tenant repository.

Tenants are global (not tenant-scoped): reads only exclude soft-deleted rows.
name and keycloak_group_id are globally unique.
"""

import uuid
from typing import List, Optional

from sqlalchemy import select

from ome.models.tenant import Tenant
from ome.repositories.base_repo import AuditedRepository
from ome.repositories.errors import DuplicateEntity


class TenantRepository(AuditedRepository[Tenant]):
    model = Tenant

    async def get_active(self, tenant_id: uuid.UUID) -> Optional[Tenant]:
        """Directory lookup: id match AND is_active AND NOT is_deleted."""
        tenants = await self.list(Tenant.id == tenant_id, Tenant.is_active.is_(True), limit=1)
        return tenants[0] if tenants else None

    async def list_tenants(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[Tenant]:
        """All tenants that are not deleted, active or not, ordered by name."""
        return await self.list(order_by=Tenant.name, limit=limit, offset=offset)

    async def get_by_name(self, name: str) -> Optional[Tenant]:
        tenants = await self.list(Tenant.name == name, limit=1)
        return tenants[0] if tenants else None

    async def get_by_group_id(self, keycloak_group_id: str) -> Optional[Tenant]:
        tenants = await self.list(Tenant.keycloak_group_id == keycloak_group_id, limit=1)
        return tenants[0] if tenants else None

    async def _taken(self, tenant: Tenant, column, value) -> bool:
        # Global unique indexes cover deleted rows too
        query = select(Tenant.id).where(column == value)
        if tenant.id is not None:
            query = query.where(Tenant.id != tenant.id)
        result = await self.session.execute(query.limit(1))
        return result.first() is not None

    async def _check_unique(self, tenant: Tenant) -> None:
        if await self._taken(tenant, Tenant.name, tenant.name):
            raise DuplicateEntity("Tenant", "name", tenant.name)
        if tenant.keycloak_group_id and await self._taken(
            tenant, Tenant.keycloak_group_id, tenant.keycloak_group_id
        ):
            raise DuplicateEntity("Tenant", "keycloak_group_id", tenant.keycloak_group_id)
