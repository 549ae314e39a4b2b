"""
Tenant directory with an in-process TTL cache.

Lookups query tenants by ``id AND is_active AND NOT is_deleted``. Results are
cached for 10 minutes, both hits and misses, so repeated lookups of an unknown
tenant do not hit the database. Entries are never invalidated on tenant
update; staleness is bounded by the TTL. Expired entries are swept whenever
a new entry is stored and the cache never holds more than ``max_entries``
ids, so lookups of arbitrary unknown ids cannot grow it without bound.

The cache is shared by all requests in the process. All access happens on the
event loop with no await between reading and writing an entry, so no lock is
needed. Two concurrent misses for the same id may both query; the later write
wins with an identical value.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import async_sessionmaker

from ome.auth.jwt import parse_uuid
from ome.models.tenant import Tenant
from ome.platform.tenant_context import RequestContext
from ome.repositories.tenant_repository import TenantRepository

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 600  # 10 minutes
DEFAULT_CACHE_MAX_ENTRIES = 10_000


@dataclass(frozen=True)
class TenantRecord:
    """Detached, immutable snapshot of a tenant row."""

    id: uuid.UUID
    name: str
    display_name: str
    keycloak_group_id: str
    is_active: bool
    connection_string: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_model(cls, tenant: Tenant) -> "TenantRecord":
        return cls(
            id=tenant.id,
            name=tenant.name,
            display_name=tenant.display_name,
            keycloak_group_id=tenant.keycloak_group_id,
            is_active=tenant.is_active,
            connection_string=tenant.connection_string,
        )


class TenantDirectory:
    """
    Cached tenant lookups.

    Usage:
        directory = TenantDirectory(get_session_factory())
        if await directory.tenant_exists(tenant_id):
            record = await directory.get_tenant(tenant_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
    ):
        self._session_factory = session_factory
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        # tenant id -> (expires_at, record or None for a cached miss).
        # Insertion order is expiry order: every entry gets the same TTL and is
        # re-inserted at the end when refreshed.
        self._cache: Dict[uuid.UUID, Tuple[float, Optional[TenantRecord]]] = {}

    def _cached(self, tenant_id: uuid.UUID) -> Tuple[bool, Optional[TenantRecord]]:
        entry = self._cache.get(tenant_id)
        if entry is None:
            return False, None
        expires_at, record = entry
        if self._clock() >= expires_at:
            self._cache.pop(tenant_id, None)
            return False, None
        return True, record

    def _store(self, tenant_id: uuid.UUID, record: Optional[TenantRecord]) -> None:
        now = self._clock()
        # Drop expired entries from the front, then the oldest ones over the bound
        while self._cache:
            oldest, (expires_at, _) = next(iter(self._cache.items()))
            if expires_at > now and len(self._cache) < self._max_entries:
                break
            del self._cache[oldest]
        self._cache.pop(tenant_id, None)
        self._cache[tenant_id] = (now + self._ttl_seconds, record)

    async def _load(self, tenant_id: uuid.UUID) -> Optional[TenantRecord]:
        async with self._session_factory() as session:
            repo = TenantRepository(session, RequestContext.system())
            tenant = await repo.get_active(tenant_id)
            return TenantRecord.from_model(tenant) if tenant is not None else None

    async def get_tenant(self, tenant_id) -> Optional[TenantRecord]:
        """Get an active tenant by id, or None. Misses are cached too."""
        parsed = parse_uuid(tenant_id)
        if parsed is None:
            return None

        hit, record = self._cached(parsed)
        if hit:
            return record

        record = await self._load(parsed)
        self._store(parsed, record)
        logger.debug(
            "Tenant directory cache populated",
            extra={"tenant_id": str(parsed), "found": record is not None},
        )
        return record

    async def tenant_exists(self, tenant_id) -> bool:
        return await self.get_tenant(tenant_id) is not None

    async def get_connection_string(self, tenant_id) -> Optional[str]:
        record = await self.get_tenant(tenant_id)
        return record.connection_string if record is not None else None

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()
