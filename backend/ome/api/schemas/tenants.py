"""
Tenant schemas.

SECURITY: connection_string is never part of an outbound schema.
"""

import uuid
from typing import List

from pydantic import BaseModel, ConfigDict

from ome.platform.tenant_directory import TenantRecord


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    display_name: str
    keycloak_group_id: str
    is_active: bool

    @classmethod
    def from_record(cls, record: TenantRecord) -> "TenantResponse":
        return cls(
            id=record.id,
            name=record.name,
            display_name=record.display_name,
            keycloak_group_id=record.keycloak_group_id,
            is_active=record.is_active,
        )


class TenantListResponse(BaseModel):
    tenants: List[TenantResponse]
    total: int
