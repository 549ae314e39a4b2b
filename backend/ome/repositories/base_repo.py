"""
Base repositories with audit stamping, soft delete and strict tenant isolation.

CRITICAL:
- Every read excludes soft-deleted rows unless an *_including_deleted method is used.
- Every read of a tenant-scoped model is filtered by the request's tenant id.
  With no tenant resolved, reads return nothing.
- add() ALWAYS overwrites tenant_id and created_* stamps; caller values are ignored.
- update() and delete() refuse entities whose stored tenant differs from the
  current one, or whose tenant_id was reassigned, before any mutation is applied.
- delete() is logical. Rows are never physically removed.

Repositories flush but never commit; the service owning the unit of work commits.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Generic, List, Optional, Tuple, Type, TypeVar

from sqlalchemy import false, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from ome.models import TENANT_SCOPED_MODELS
from ome.models.base import AuditableMixin, TenantScopedMixin
from ome.platform.tenant_context import RequestContext
from ome.repositories.errors import (
    CrossTenantAccessDenied,
    DuplicateEntity,
    NotFound,
    TenantNotResolved,
)

logger = logging.getLogger(__name__)

# Type variable for repository models
T = TypeVar("T", bound=AuditableMixin)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _stored_tenant(entity: TenantScopedMixin) -> Tuple[Any, bool]:
    """
    Tenant id as loaded from the database, and whether it has a pending change.

    The attribute history keeps the persisted value even after the caller
    assigns a new tenant_id, so a reassigned entity is judged by its row.
    """
    state = inspect(entity)
    if not state.persistent:
        return entity.tenant_id, False
    history = state.attrs.tenant_id.history
    if history.deleted:
        return history.deleted[0], True
    if history.unchanged:
        return history.unchanged[0], False
    return entity.tenant_id, bool(history.added)


class AuditedRepository(Generic[T]):
    """
    Repository for any auditable entity (soft delete + audit stamps).

    Subclasses set ``model``.
    """

    model: Type[T]

    def __init__(self, session: AsyncSession, context: RequestContext):
        self.session = session
        self.context = context

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    def _scope(self, query: Select) -> Select:
        return query

    def _query(self, include_deleted: bool = False) -> Select:
        query = self._scope(select(self.model))
        if not include_deleted:
            query = query.where(self.model.is_deleted.is_(False))
        return query

    async def find(self, entity_id: Any) -> Optional[T]:
        result = await self.session.execute(self._query().where(self.model.id == entity_id))
        return result.scalars().first()

    async def get(self, entity_id: Any) -> T:
        """
        Get entity by id.

        Raises:
            NotFound: Missing, soft-deleted or out of scope
        """
        entity = await self.find(entity_id)
        if entity is None:
            raise NotFound(self.entity_name, entity_id)
        return entity

    async def list(self, *criteria, order_by=None, limit: Optional[int] = None, offset: Optional[int] = None) -> List[T]:
        query = self._query().where(*criteria)
        if order_by is not None:
            query = query.order_by(order_by)
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_including_deleted(self, entity_id: Any) -> T:
        """Administrative read path: soft-deleted rows are returned too."""
        result = await self.session.execute(
            self._query(include_deleted=True).where(self.model.id == entity_id)
        )
        entity = result.scalars().first()
        if entity is None:
            raise NotFound(self.entity_name, entity_id)
        return entity

    async def list_including_deleted(self, *criteria) -> List[T]:
        """Administrative read path: soft-deleted rows are returned too."""
        result = await self.session.execute(self._query(include_deleted=True).where(*criteria))
        return list(result.scalars().all())

    async def exists(self, *criteria) -> bool:
        result = await self.session.execute(self._query().where(*criteria).limit(1))
        return result.scalars().first() is not None

    def _stamp_created(self, entity: AuditableMixin) -> None:
        entity.created_at = utcnow()
        entity.created_by = self.context.user_id
        entity.last_modified_at = None
        entity.last_modified_by = None
        entity.is_deleted = False

    def _stamp_modified(self, entity: AuditableMixin) -> None:
        entity.last_modified_at = utcnow()
        entity.last_modified_by = self.context.user_id

    def _guard(self, entity: AuditableMixin, operation: str) -> None:
        """Raise before mutating an entity outside the current scope."""

    def _stamp_pending(self, root: AuditableMixin) -> None:
        """
        Stamp child entities that reached the session through a cascade.

        New children get created stamps (and the tenant); modified children
        are guarded and get modifier stamps.
        """
        for obj in list(self.session.new):
            if obj is root or not isinstance(obj, AuditableMixin):
                continue
            if obj.created_at is None:
                self._stamp_new_child(obj)
        for obj in list(self.session.dirty):
            if obj is root or not isinstance(obj, AuditableMixin):
                continue
            self._guard(obj, "update")
            self._stamp_modified(obj)

    def _stamp_new_child(self, entity: AuditableMixin) -> None:
        self._stamp_created(entity)

    async def _check_unique(self, entity: T) -> None:
        """Pre-check uniqueness rules; raise DuplicateEntity. Overridden per model."""

    async def _flush(self, entity: T) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent writer after the pre-check passed
            await self.session.rollback()
            logger.warning(
                "Unique constraint violated on write",
                extra={"entity_type": self.entity_name, "error_type": type(e.orig).__name__},
            )
            raise DuplicateEntity(self.entity_name)

    async def add(self, entity: T) -> T:
        self._stamp_created(entity)
        await self._check_unique(entity)
        self.session.add(entity)
        self._stamp_pending(entity)
        await self._flush(entity)

        logger.info(
            "Entity created",
            extra={
                "entity_type": self.entity_name,
                "entity_id": str(entity.id),
                "user_id": self.context.user_id,
            },
        )
        return entity

    async def update(self, entity: T) -> T:
        self._guard(entity, "update")
        await self._check_unique(entity)
        self._stamp_modified(entity)
        self._stamp_pending(entity)
        await self._flush(entity)

        logger.info(
            "Entity updated",
            extra={"entity_type": self.entity_name, "entity_id": str(entity.id)},
        )
        return entity

    async def delete(self, entity: T) -> None:
        """Logical delete: sets is_deleted and stamps the modifier."""
        self._guard(entity, "delete")
        entity.is_deleted = True
        self._stamp_modified(entity)
        self._stamp_pending(entity)
        await self._flush(entity)

        logger.info(
            "Entity deleted",
            extra={"entity_type": self.entity_name, "entity_id": str(entity.id)},
        )


class TenantScopedRepository(AuditedRepository[T]):
    """
    Repository for tenant-owned entities.

    All queries are automatically scoped by the request's tenant id.
    """

    def __init__(self, session: AsyncSession, context: RequestContext):
        if self.model not in TENANT_SCOPED_MODELS:
            raise TypeError(f"{self.model.__name__} is not registered as tenant-scoped")
        super().__init__(session, context)

    @property
    def tenant_id(self):
        return self.context.tenant_id

    def _scope(self, query: Select) -> Select:
        if self.tenant_id is None:
            # No tenant selected: empty result, not an error
            return query.where(false())
        return query.where(self.model.tenant_id == self.tenant_id)

    def _require_tenant(self):
        if self.tenant_id is None:
            raise TenantNotResolved()
        return self.tenant_id

    def _stamp_created(self, entity: AuditableMixin) -> None:
        super()._stamp_created(entity)
        if isinstance(entity, TenantScopedMixin):
            # SECURITY: caller-supplied tenant_id is always overwritten
            entity.tenant_id = self._require_tenant()

    def _guard(self, entity: AuditableMixin, operation: str) -> None:
        if not isinstance(entity, TenantScopedMixin):
            return
        stored_tenant_id, reassigned = _stored_tenant(entity)
        if reassigned or stored_tenant_id != self.tenant_id:
            logger.error(
                "Cross-tenant access denied",
                extra={
                    "operation": operation,
                    "entity_type": type(entity).__name__,
                    "entity_id": str(entity.id),
                    "user_id": self.context.user_id,
                    "entity_tenant_id": str(stored_tenant_id),
                    "tenant_reassigned": reassigned,
                    "current_tenant_id": str(self.tenant_id) if self.tenant_id else None,
                },
            )
            if reassigned and stored_tenant_id is not None:
                # Discard the pending reassignment so a later commit cannot move the row
                entity.tenant_id = stored_tenant_id
            raise CrossTenantAccessDenied(type(entity).__name__, entity.id)
