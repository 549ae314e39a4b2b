"""
Errors raised by the data access layer.

The transport boundary maps these to stable error codes in
ome/platform/errors.py; nothing here is HTTP-specific.
"""

from typing import Any, Optional


class RepositoryError(Exception):
    """Base exception for repository errors."""

    error_code = "repository_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(RepositoryError):
    """Raised when an entity does not exist, is soft-deleted or belongs to another tenant."""

    error_code = "not_found"

    def __init__(self, entity_type: str, entity_id: Any = None):
        super().__init__(f"{entity_type} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class DuplicateEntity(RepositoryError):
    """Raised when a write would violate a uniqueness rule."""

    error_code = "duplicate_entity"

    def __init__(self, entity_type: str, field: Optional[str] = None, value: Any = None):
        if field:
            message = f"{entity_type} with this {field} already exists"
        else:
            message = f"{entity_type} already exists"
        super().__init__(message)
        self.entity_type = entity_type
        self.field = field
        self.value = value


class CrossTenantAccessDenied(RepositoryError):
    """
    Raised when an update or delete targets an entity owned by another tenant.

    Fatal: never retried. Raised before any mutation is applied.
    """

    error_code = "cross_tenant_access_denied"

    def __init__(self, entity_type: str, entity_id: Any = None):
        super().__init__(f"Access to {entity_type} denied")
        self.entity_type = entity_type
        self.entity_id = entity_id


class TenantNotResolved(RepositoryError):
    """Raised when a tenant-scoped write is attempted with no tenant selected."""

    error_code = "tenant_not_resolved"

    def __init__(self):
        super().__init__("No tenant selected for this request")
