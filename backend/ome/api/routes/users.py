"""
User management API for the current tenant.

Reads require an authenticated caller; mutations require OmeAdmin or
OmeSuperUser (enforced by UserService). All queries are scoped to the
request's tenant by the repository layer.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ome.api.dependencies import get_user_service
from ome.api.schemas.users import (
    CreateUserRequest,
    MeResponse,
    UpdateUserRequest,
    UserListResponse,
    UserResponse,
)
from ome.platform.rbac import require_authenticated
from ome.platform.tenant_context import RequestContext
from ome.services.user_service import UserService

router = APIRouter(prefix="/api", tags=["users"])


@router.get("/me", response_model=MeResponse)
async def get_me(context: RequestContext = Depends(require_authenticated)):
    """Current identity and resolved tenant."""
    security = context.security
    return MeResponse(
        user_id=security.user_id,
        username=security.username,
        email=security.email,
        roles=sorted(security.roles),
        tenant_id=context.tenant_id,
        tenant_source=context.tenant.source,
        tenant_key=security.tenant_key,
    )


@router.get("/users", response_model=UserListResponse)
async def list_users(
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: Optional[int] = Query(None, ge=0),
    context: RequestContext = Depends(require_authenticated),
    service: UserService = Depends(get_user_service),
):
    users = await service.list_users(limit=limit, offset=offset)
    return UserListResponse(users=[UserResponse.from_model(user) for user in users], total=len(users))


@router.get("/users/me", response_model=UserResponse)
async def get_current_user(
    context: RequestContext = Depends(require_authenticated),
    service: UserService = Depends(get_user_service),
):
    """Stored user record of the caller. 404 when the caller has no user in the current tenant."""
    return UserResponse.from_model(await service.get_current_user())


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    context: RequestContext = Depends(require_authenticated),
    service: UserService = Depends(get_user_service),
):
    return UserResponse.from_model(await service.get_user(user_id))


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(body: CreateUserRequest, service: UserService = Depends(get_user_service)):
    user = await service.create_user(
        keycloak_id=body.keycloak_id,
        username=body.username,
        email=str(body.email),
        first_name=body.first_name,
        last_name=body.last_name,
        roles=body.roles,
    )
    return UserResponse.from_model(user)


@router.put("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: uuid.UUID,
    body: UpdateUserRequest,
    service: UserService = Depends(get_user_service),
):
    user = await service.update_user(
        user_id,
        username=body.username,
        email=str(body.email) if body.email is not None else None,
        first_name=body.first_name,
        last_name=body.last_name,
        is_active=body.is_active,
        roles=body.roles,
    )
    return UserResponse.from_model(user)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: uuid.UUID, service: UserService = Depends(get_user_service)):
    await service.delete_user(user_id)
