"""
Base mixins for database models.

Provides common functionality:
- GUID: Cross-database compatible UUID type
- AuditableMixin: id, audit stamps and the soft-delete flag shared by every entity
- TenantScopedMixin: tenant_id for multi-tenant isolation

Audit stamps are written by the repositories in ome/repositories/base_repo.py,
never by callers. Rows are never physically removed: delete sets is_deleted.
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, String, TypeDecorator, false
from sqlalchemy.orm import declared_attr
from sqlalchemy.types import CHAR


class GUID(TypeDecorator):
    """
    Platform-independent GUID type.

    Uses CHAR(36) for storage, works with PostgreSQL, SQLite, and other databases.
    Stores UUID as string and converts to/from Python uuid.UUID on access.
    """
    impl = CHAR(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        if value is not None and not isinstance(value, uuid.UUID):
            return uuid.UUID(value)
        return value


def generate_uuid() -> uuid.UUID:
    """Generate a UUID4 for use as a primary key default."""
    return uuid.uuid4()


class AuditableMixin:
    """
    Mixin for every persisted entity.

    created_* are stamped on add, last_modified_* on update and delete.
    is_deleted=True rows are excluded from every default read path.
    """

    id = Column(
        GUID(),
        primary_key=True,
        default=generate_uuid,
        comment="Primary key"
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        comment="Timestamp when record was created"
    )

    created_by = Column(
        String(255),
        nullable=True,
        comment="External user id that created the record"
    )

    last_modified_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Timestamp of the last update or logical delete"
    )

    last_modified_by = Column(
        String(255),
        nullable=True,
        comment="External user id of the last modifier"
    )

    is_deleted = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
        index=True,
        comment="Soft-delete flag. Rows are never physically removed."
    )


class TenantScopedMixin(AuditableMixin):
    """
    Mixin that adds tenant_id column for multi-tenant isolation.

    SECURITY: tenant_id is ALWAYS stamped from the request context by the
    repository. A caller-supplied tenant_id is overwritten on add.
    """

    @declared_attr
    def tenant_id(cls):
        return Column(
            GUID(),
            nullable=False,
            index=True,
            comment="Owning tenant. NEVER taken from client input."
        )
