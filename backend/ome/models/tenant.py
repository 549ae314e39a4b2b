"""
Tenant model for the multi-tenant backend.

A Tenant is an isolated customer organisation. Its id is the tenant_id that
every tenant-scoped row references, and its keycloak_group_id links it to the
identity provider group whose path ends with the tenant identifier.

SECURITY: connection_string is a secret. It is excluded from __repr__ and from
every outbound schema (see ome/api/schemas/tenants.py).
"""

from sqlalchemy import Boolean, Column, String

from ome.db_base import Base
from ome.models.base import AuditableMixin


class Tenant(Base, AuditableMixin):
    """Tenant directory record. Not itself tenant-scoped."""

    __tablename__ = "tenants"

    name = Column(
        String(100),
        nullable=False,
        unique=True,
        comment="Globally unique technical name"
    )

    display_name = Column(
        String(200),
        nullable=False,
        comment="Human readable name"
    )

    keycloak_group_id = Column(
        String(100),
        nullable=False,
        unique=True,
        comment="Identity provider group id (globally unique)"
    )

    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        comment="Inactive tenants are invisible to the tenant directory"
    )

    connection_string = Column(
        String(500),
        nullable=True,
        comment="Per-tenant database connection string (secret)"
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name={self.name}, is_active={self.is_active})>"
