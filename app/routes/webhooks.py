"""
Webhook API routes.

Subscriptions and delivery history of the caller's tenant. The tenant is
always the client code of the token.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_user, TokenPayload
from app.dependencies.tenant import get_delivery_service
from app.routes.schemas import CamelModel, envelope
from app.services.webhook_service import WebhookDeliveryService
from app.services.webhook_subscription_service import WebhookSubscriptionService


router = APIRouter(prefix="/api/webhook", tags=["webhooks"])

MAX_PAGE_SIZE = 200


class SubscribeRequest(CamelModel):
    """Request model for creating a subscription."""
    event_type: str
    webhook_url: str
    secret_key: str | None = None
    description: str | None = None


class SubscriptionResponse(CamelModel):
    id: str
    client_code: str
    event_type: str
    webhook_url: str
    is_active: bool
    description: str | None = None
    created_on: datetime
    updated_on: datetime | None = None


class WebhookEventResponse(CamelModel):
    id: str
    client_code: str
    event_type: str
    webhook_url: str
    status: str
    response_status_code: int | None = None
    error_message: str | None = None
    retry_count: int
    created_on: datetime
    delivered_on: datetime | None = None
    next_retry_at: datetime | None = None


@router.post("/subscribe", status_code=status.HTTP_201_CREATED)
async def subscribe(
    request: SubscribeRequest,
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Subscribe a URL to an event type pattern.

    Patterns are an exact event name, "*" or "<prefix>.*". The URL must
    use https.
    """
    subscription = await WebhookSubscriptionService(db).subscribe(
        client_code=token.client_code,
        event_type=request.event_type,
        webhook_url=request.webhook_url,
        secret_key=request.secret_key,
        description=request.description,
    )
    return envelope(SubscriptionResponse.model_validate(subscription))


@router.get("/subscriptions")
async def list_subscriptions(
    event_type: str | None = Query(None, alias="eventType"),
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Active subscriptions, optionally only those covering eventType."""
    subscriptions = await WebhookSubscriptionService(db).list_subscriptions(
        token.client_code,
        event_type,
    )
    return envelope([SubscriptionResponse.model_validate(s) for s in subscriptions])


@router.delete("/subscriptions/{subscription_id}")
async def unsubscribe(
    subscription_id: str,
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Deactivate a subscription of the caller's tenant."""
    removed = await WebhookSubscriptionService(db).unsubscribe(subscription_id, token.client_code)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found"
        )
    return envelope(message="Unsubscribed successfully")


@router.get("/events")
async def list_events(
    event_type: str | None = Query(None, alias="eventType"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    token: TokenPayload = Depends(get_current_user),
    delivery: WebhookDeliveryService = Depends(get_delivery_service)
):
    """Delivery history, newest first."""
    events = await delivery.list_events(
        token.client_code,
        event_type=event_type,
        page=page,
        page_size=page_size,
    )
    return envelope([WebhookEventResponse.model_validate(e) for e in events])


@router.post("/retry-failed")
async def retry_failed(
    token: TokenPayload = Depends(get_current_user),
    delivery: WebhookDeliveryService = Depends(get_delivery_service)
):
    """Re-send due failed deliveries of the caller's tenant now."""
    retried = await delivery.retry_failed(token.client_code)
    return envelope(
        {"retriedCount": retried},
        message=f"Retried {retried} webhook(s)",
    )
