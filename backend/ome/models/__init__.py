"""
Persistence models.

Every entity shares AuditableMixin; tenant-owned entities use TenantScopedMixin.
TENANT_SCOPED_MODELS is the explicit registration list the repositories check
against; there is no reflection over mapped classes.
"""

from ome.models.base import GUID, AuditableMixin, TenantScopedMixin, generate_uuid
from ome.models.tenant import Tenant
from ome.models.user import User, UserRole

TENANT_SCOPED_MODELS = (User, UserRole)

__all__ = [
    "GUID",
    "AuditableMixin",
    "TenantScopedMixin",
    "generate_uuid",
    "Tenant",
    "User",
    "UserRole",
    "TENANT_SCOPED_MODELS",
]
