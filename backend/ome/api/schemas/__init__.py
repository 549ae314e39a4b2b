"""
API schemas package.

Contains Pydantic models for request/response validation.
"""

from ome.api.schemas.tenants import TenantListResponse, TenantResponse
from ome.api.schemas.users import (
    CreateUserRequest,
    MeResponse,
    UpdateUserRequest,
    UserListResponse,
    UserResponse,
)

__all__ = [
    "TenantListResponse",
    "TenantResponse",
    "CreateUserRequest",
    "MeResponse",
    "UpdateUserRequest",
    "UserListResponse",
    "UserResponse",
]
