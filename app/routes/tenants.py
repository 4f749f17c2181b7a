"""
Tenant administration routes (control plane, admin only).
"""
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import require_admin, TokenPayload
from app.dependencies.tenant import get_tenant_resolver
from app.routes.schemas import CamelModel, envelope, unwrap
from app.services.tenant_resolver import TenantResolver
from app.services.tenant_service import TenantService


router = APIRouter(prefix="/api/tenants", tags=["tenants"])


class RegisterTenantRequest(CamelModel):
    client_code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    database_name: str | None = Field(None, max_length=100)


class TenantResponse(CamelModel):
    client_code: str
    name: str
    database_name: str
    is_active: bool
    created_at: datetime | None = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_tenant(
    request: RegisterTenantRequest,
    admin: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    resolver: TenantResolver = Depends(get_tenant_resolver)
):
    """Register a tenant and create its database schema."""
    result = await TenantService(db).register(
        request.client_code,
        request.name,
        request.database_name,
    )
    tenant = unwrap(result)
    await resolver.ensure_schema(tenant)
    return envelope(TenantResponse.model_validate(tenant))


@router.get("")
async def list_tenants(
    admin: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    tenants = await TenantService(db).list_active()
    return envelope([TenantResponse.model_validate(t) for t in tenants])
