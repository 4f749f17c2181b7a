"""
Dependencies exposing the long-lived objects built in the lifespan handler.
"""
from fastapi import Request

from app.services.tenant_resolver import TenantResolver
from app.services.webhook_dispatcher import WebhookDispatcher
from app.services.webhook_service import WebhookDeliveryService


def get_tenant_resolver(request: Request) -> TenantResolver:
    return request.app.state.tenant_resolver


def get_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.webhook_dispatcher


def get_delivery_service(request: Request) -> WebhookDeliveryService:
    return request.app.state.webhook_delivery
