"""
Dashboard API routes.
"""
from decimal import Decimal

from fastapi import APIRouter, Depends

from app.dependencies.auth import get_current_user, TokenPayload
from app.dependencies.tenant import get_tenant_resolver
from app.routes.schemas import CamelModel, envelope
from app.services.dashboard_service import DashboardService
from app.services.tenant_resolver import TenantResolver


router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


class DashboardSummaryResponse(CamelModel):
    total_customers: int
    new_customers_this_month: int
    business_customers: int
    individual_customers: int
    total_quotations: int
    quotations_by_status: dict[str, int]
    total_quotation_value: Decimal


@router.get("/summary")
async def get_summary(
    token: TokenPayload = Depends(get_current_user),
    resolver: TenantResolver = Depends(get_tenant_resolver)
):
    """Customer and quotation figures of the caller's tenant."""
    summary = await DashboardService(resolver).get_summary(token.client_code)
    return envelope(DashboardSummaryResponse.model_validate(summary))
