"""
Customer API routes (tenant database).
"""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field

from app.dependencies.auth import get_current_user, TokenPayload
from app.dependencies.tenant import get_dispatcher, get_tenant_resolver
from app.routes.schemas import CamelModel, envelope, unwrap
from app.services.customer_service import CustomerService
from app.services.tenant_resolver import TenantResolver
from app.services.webhook_dispatcher import WebhookDispatcher


router = APIRouter(prefix="/api/customer", tags=["customers"])


class CreateCustomerRequest(CamelModel):
    customer_name: str = Field(..., min_length=1, max_length=150)
    email: str = Field(..., min_length=3, max_length=100)
    mobile_number: str | None = Field(None, max_length=15)
    alternate_phone: str | None = Field(None, max_length=15)
    address: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    pin_code: str | None = Field(None, max_length=10)
    country: str | None = Field(None, max_length=100)
    customer_type: str | None = Field(None, max_length=50)
    company_name: str | None = Field(None, max_length=100)
    gst_number: str | None = Field(None, max_length=50)
    notes: str | None = Field(None, max_length=500)


class UpdateCustomerRequest(CamelModel):
    customer_name: str | None = Field(None, min_length=1, max_length=150)
    email: str | None = Field(None, min_length=3, max_length=100)
    mobile_number: str | None = Field(None, max_length=15)
    alternate_phone: str | None = Field(None, max_length=15)
    address: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    pin_code: str | None = Field(None, max_length=10)
    country: str | None = Field(None, max_length=100)
    customer_type: str | None = Field(None, max_length=50)
    company_name: str | None = Field(None, max_length=100)
    gst_number: str | None = Field(None, max_length=50)
    notes: str | None = Field(None, max_length=500)
    is_active: bool | None = None


class CustomerResponse(CamelModel):
    id: int
    client_code: str
    customer_name: str
    email: str
    mobile_number: str | None = None
    alternate_phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pin_code: str | None = None
    country: str | None = None
    customer_type: str | None = None
    company_name: str | None = None
    gst_number: str | None = None
    notes: str | None = None
    is_active: bool
    created_on: datetime
    updated_on: datetime | None = None


def get_customer_service(
    resolver: TenantResolver = Depends(get_tenant_resolver),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher)
) -> CustomerService:
    return CustomerService(resolver, dispatcher)


@router.get("")
async def list_customers(
    search: str | None = Query(None),
    token: TokenPayload = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    """Active customers, optionally filtered by a search term."""
    if search:
        customers = await service.search_customers(search, token.client_code)
    else:
        customers = await service.list_customers(token.client_code)
    return envelope([CustomerResponse.model_validate(c) for c in customers])


@router.get("/{customer_id}")
async def get_customer(
    customer_id: int,
    token: TokenPayload = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    customer = await service.get_customer(customer_id, token.client_code)
    if customer is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Customer with ID {customer_id} not found"
        )
    return envelope(CustomerResponse.model_validate(customer))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(
    request: CreateCustomerRequest,
    token: TokenPayload = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    result = await service.create_customer(token.client_code, **request.model_dump())
    return envelope(CustomerResponse.model_validate(unwrap(result)))


@router.put("/{customer_id}")
async def update_customer(
    customer_id: int,
    request: UpdateCustomerRequest,
    token: TokenPayload = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    result = await service.update_customer(
        customer_id,
        token.client_code,
        **request.model_dump(exclude_unset=True),
    )
    return envelope(CustomerResponse.model_validate(unwrap(result)))


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: int,
    token: TokenPayload = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    """Soft-delete a customer."""
    if not await service.delete_customer(customer_id, token.client_code):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Customer with ID {customer_id} not found"
        )
    return envelope(message="Customer deleted successfully")
