"""
User schemas for the users API.

Role strings are accepted verbatim on input; unknown role names are dropped
by UserService.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ome.models.user import User


# =============================================================================
# Request Models
# =============================================================================

class CreateUserRequest(BaseModel):
    """Request body for creating a user in the current tenant."""

    keycloak_id: str = Field(..., min_length=1, max_length=100)
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    roles: List[str] = Field(default_factory=list)


class UpdateUserRequest(BaseModel):
    """Request body for updating a user. Omitted fields are unchanged."""

    username: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    roles: Optional[List[str]] = Field(None, description="Replaces the current role set when given")


# =============================================================================
# Response Models
# =============================================================================

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    keycloak_id: str
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    roles: List[str]
    created_at: datetime
    created_by: Optional[str] = None
    last_modified_at: Optional[datetime] = None
    last_modified_by: Optional[str] = None

    @classmethod
    def from_model(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            tenant_id=user.tenant_id,
            keycloak_id=user.keycloak_id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_active=user.is_active,
            roles=user.role_names,
            created_at=user.created_at,
            created_by=user.created_by,
            last_modified_at=user.last_modified_at,
            last_modified_by=user.last_modified_by,
        )


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int


class MeResponse(BaseModel):
    """Current caller identity."""

    user_id: str
    username: Optional[str] = None
    email: Optional[str] = None
    roles: List[str]
    tenant_id: Optional[uuid.UUID] = None
    tenant_source: Optional[str] = None
    tenant_key: Optional[str] = None
