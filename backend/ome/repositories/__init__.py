"""Repository layer with tenant isolation and soft-delete enforcement."""

from ome.repositories.base_repo import AuditedRepository, TenantScopedRepository
from ome.repositories.errors import (
    CrossTenantAccessDenied,
    DuplicateEntity,
    NotFound,
    RepositoryError,
    TenantNotResolved,
)
from ome.repositories.tenant_repository import TenantRepository
from ome.repositories.user_repository import UserRepository

__all__ = [
    "AuditedRepository",
    "TenantScopedRepository",
    "CrossTenantAccessDenied",
    "DuplicateEntity",
    "NotFound",
    "RepositoryError",
    "TenantNotResolved",
    "TenantRepository",
    "UserRepository",
]
