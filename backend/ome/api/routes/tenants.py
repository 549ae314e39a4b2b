"""
Tenant directory API.

/current is open to any authenticated caller and goes through the cached
TenantDirectory. Listing tenants and reading one by id are OmeAdmin-only and
read the database directly; soft-deleted tenants are never returned.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ome.api.dependencies import get_tenant_directory, get_tenant_repository
from ome.api.schemas.tenants import TenantListResponse, TenantResponse
from ome.constants.permissions import RoleType
from ome.platform.errors import NotFoundError
from ome.platform.rbac import require_authenticated, require_role
from ome.platform.tenant_context import RequestContext
from ome.platform.tenant_directory import TenantDirectory
from ome.repositories.tenant_repository import TenantRepository

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


@router.get("", response_model=TenantListResponse)
async def list_tenants(
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: Optional[int] = Query(None, ge=0),
    context: RequestContext = Depends(require_role(RoleType.OME_ADMIN)),
    tenants: TenantRepository = Depends(get_tenant_repository),
):
    records = await tenants.list_tenants(limit=limit, offset=offset)
    return TenantListResponse(
        tenants=[TenantResponse.model_validate(tenant) for tenant in records],
        total=len(records),
    )


@router.get("/current", response_model=TenantResponse)
async def get_current_tenant(
    context: RequestContext = Depends(require_authenticated),
    directory: TenantDirectory = Depends(get_tenant_directory),
):
    """The tenant resolved for this request. 404 when none is selected or it is inactive."""
    if context.tenant_id is None:
        raise NotFoundError("No tenant selected")
    record = await directory.get_tenant(context.tenant_id)
    if record is None:
        raise NotFoundError("Tenant not found")
    return TenantResponse.from_record(record)


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant_id: uuid.UUID,
    context: RequestContext = Depends(require_role(RoleType.OME_ADMIN)),
    tenants: TenantRepository = Depends(get_tenant_repository),
):
    return TenantResponse.model_validate(await tenants.get(tenant_id))
