"""
Quotation API routes (tenant database).
"""
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field

from app.dependencies.auth import get_current_user, TokenPayload
from app.dependencies.tenant import get_dispatcher, get_tenant_resolver
from app.models.quotation import MakingType, QuotationStatus
from app.routes.schemas import CamelModel, envelope, unwrap
from app.services.quotation_service import DEFAULT_GST_PERCENTAGE, ItemInput, QuotationService
from app.services.tenant_resolver import TenantResolver
from app.services.webhook_dispatcher import WebhookDispatcher


router = APIRouter(prefix="/api/quotation", tags=["quotations"])


class QuotationItemRequest(CamelModel):
    product_id: int
    item_code: str = Field(..., max_length=50)
    rfid_code: str | None = Field(None, max_length=50)
    design_name: str | None = Field(None, max_length=100)
    purity: str | None = Field(None, max_length=50)
    gross_weight: Decimal = Field(..., ge=0)
    stone_weight: Decimal = Field(Decimal("0"), ge=0)
    net_weight: Decimal = Field(..., ge=0)
    gold_rate: Decimal = Field(Decimal("0"), ge=0)
    making: Decimal = Field(Decimal("0"), ge=0)
    making_type: MakingType = MakingType.FIXED
    stone_amount: Decimal = Field(Decimal("0"), ge=0)
    quantity: int = Field(1, ge=1)
    remarks: str | None = Field(None, max_length=500)

    def to_input(self) -> ItemInput:
        fields = self.model_dump()
        fields["making_type"] = self.making_type.value
        return ItemInput(**fields)


class CreateQuotationRequest(CamelModel):
    customer_id: int
    items: list[QuotationItemRequest]
    old_metal_weight: Decimal | None = None
    old_metal_rate: Decimal | None = None
    old_metal_amount: Decimal | None = None
    payment_mode: str | None = Field(None, max_length=50)
    is_gst_applied: bool = False
    gst_percentage: Decimal = DEFAULT_GST_PERCENTAGE
    valid_until: datetime | None = None
    remarks: str | None = Field(None, max_length=500)


class UpdateQuotationRequest(CamelModel):
    customer_id: int | None = None
    items: list[QuotationItemRequest] | None = None
    old_metal_weight: Decimal | None = None
    old_metal_rate: Decimal | None = None
    old_metal_amount: Decimal | None = None
    payment_mode: str | None = Field(None, max_length=50)
    is_gst_applied: bool | None = None
    gst_percentage: Decimal | None = None
    status: QuotationStatus | None = None
    valid_until: datetime | None = None
    remarks: str | None = Field(None, max_length=500)


class QuotationItemResponse(CamelModel):
    id: int
    product_id: int
    item_code: str
    rfid_code: str | None = None
    design_name: str
    purity: str
    gross_weight: Decimal
    stone_weight: Decimal
    net_weight: Decimal
    gold_rate: Decimal
    making: Decimal
    making_type: str
    stone_amount: Decimal
    making_amount: Decimal
    metal_amount: Decimal
    item_amount: Decimal
    quantity: int
    remarks: str | None = None


class QuotationResponse(CamelModel):
    id: int
    client_code: str
    quotation_number: str
    customer_id: int
    customer_name: str | None = None
    quantity: int
    total_gross_weight: Decimal
    old_metal_weight: Decimal | None = None
    old_metal_rate: Decimal | None = None
    old_metal_amount: Decimal | None = None
    payment_mode: str | None = None
    is_gst_applied: bool
    gst_percentage: Decimal
    gst_amount: Decimal
    sub_total_amount: Decimal
    total_amount: Decimal
    status: str
    quotation_date: datetime
    valid_until: datetime | None = None
    remarks: str | None = None
    created_on: datetime
    updated_on: datetime | None = None
    items: list[QuotationItemResponse] = []


def quotation_to_response(quotation) -> QuotationResponse:
    response = QuotationResponse.model_validate(quotation)
    if quotation.customer is not None:
        response.customer_name = quotation.customer.customer_name
    return response


def get_quotation_service(
    resolver: TenantResolver = Depends(get_tenant_resolver),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher)
) -> QuotationService:
    return QuotationService(resolver, dispatcher)


@router.get("")
async def list_quotations(
    token: TokenPayload = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service)
):
    """Active quotations, newest first."""
    quotations = await service.list_quotations(token.client_code)
    return envelope([quotation_to_response(q) for q in quotations])


@router.get("/customer/{customer_id}")
async def list_customer_quotations(
    customer_id: int,
    token: TokenPayload = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service)
):
    quotations = await service.list_quotations_by_customer(customer_id, token.client_code)
    return envelope([quotation_to_response(q) for q in quotations])


@router.get("/{quotation_id}")
async def get_quotation(
    quotation_id: int,
    token: TokenPayload = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service)
):
    quotation = await service.get_quotation(quotation_id, token.client_code)
    if quotation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Quotation with ID {quotation_id} not found"
        )
    return envelope(quotation_to_response(quotation))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_quotation(
    request: CreateQuotationRequest,
    token: TokenPayload = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service)
):
    """Create a Draft quotation; amounts are computed server side."""
    fields = request.model_dump(exclude={"items"})
    result = await service.create_quotation(
        token.client_code,
        items=[item.to_input() for item in request.items],
        **fields,
    )
    return envelope(quotation_to_response(unwrap(result)))


@router.put("/{quotation_id}")
async def update_quotation(
    quotation_id: int,
    request: UpdateQuotationRequest,
    token: TokenPayload = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service)
):
    changes = request.model_dump(exclude={"items"}, exclude_unset=True)
    if request.status is not None:
        changes["status"] = request.status.value
    items = [item.to_input() for item in request.items] if request.items else None

    result = await service.update_quotation(quotation_id, token.client_code, items=items, **changes)
    return envelope(quotation_to_response(unwrap(result)))


@router.delete("/{quotation_id}")
async def delete_quotation(
    quotation_id: int,
    token: TokenPayload = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service)
):
    """Soft-delete a quotation."""
    if not await service.delete_quotation(quotation_id, token.client_code):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Quotation with ID {quotation_id} not found"
        )
    return envelope(message="Quotation deleted successfully")
