"""
RFID Inventory API - multi-tenant backend

FastAPI application entry point.
"""
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import observability modules
from app.config import settings
from app.database import AsyncSessionLocal
from app.logging_config import configure_logging
from app.sentry_config import configure_sentry
from app.middleware.logging import LoggingMiddleware
from app.routes.metrics import router as metrics_router

# Import route modules
from app.routes.customers import router as customers_router
from app.routes.dashboard import router as dashboard_router
from app.routes.quotations import router as quotations_router
from app.routes.tenants import router as tenants_router
from app.routes.webhooks import router as webhooks_router

from app.services.tenant_resolver import TenantNotFound, TenantResolver
from app.services.tenant_service import migrate_all_tenants
from app.services.webhook_dispatcher import WebhookDispatcher
from app.services.webhook_service import WebhookDeliveryService
from app.services.webhook_subscription_service import InvalidSubscriptionInput

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the tenant resolver and the webhook pipeline, and tear them down.

    Shutdown drains triggers that were already accepted before the HTTP
    client and the tenant engines are closed.
    """
    http_client = httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    resolver = TenantResolver(
        AsyncSessionLocal,
        settings.TENANT_DATABASE_URL_TEMPLATE,
        auto_create_schema=settings.TENANT_AUTO_MIGRATE,
    )
    delivery = WebhookDeliveryService(AsyncSessionLocal, http_client=http_client)
    dispatcher = WebhookDispatcher(delivery, AsyncSessionLocal)

    app.state.tenant_resolver = resolver
    app.state.webhook_delivery = delivery
    app.state.webhook_dispatcher = dispatcher

    if settings.TENANT_AUTO_MIGRATE:
        async with AsyncSessionLocal() as db:
            await migrate_all_tenants(db, resolver)

    await dispatcher.start()
    logger.info("application_started", environment=settings.ENVIRONMENT)

    try:
        yield
    finally:
        await dispatcher.stop(drain=True, timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
        await http_client.aclose()
        await resolver.dispose()
        logger.info("application_stopped")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-tenant RFID inventory API with webhook notifications",
    lifespan=lifespan,
)

# Add logging middleware FIRST (runs before other middleware)
app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TenantNotFound)
async def tenant_not_found_handler(request: Request, exc: TenantNotFound):
    logger.warning("tenant_not_found", client_code=exc.client_code)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": f"Tenant {exc.client_code} not found"},
    )


@app.exception_handler(InvalidSubscriptionInput)
async def invalid_subscription_handler(request: Request, exc: InvalidSubscriptionInput):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

app.include_router(tenants_router)
app.include_router(webhooks_router)
app.include_router(customers_router)
app.include_router(quotations_router)
app.include_router(dashboard_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health(request: Request):
    """Detailed health check."""
    dispatcher = getattr(request.app.state, "webhook_dispatcher", None)
    return {
        "status": "healthy",
        "webhookDispatcher": "running" if dispatcher is not None and dispatcher.running else "stopped",
        "webhookQueueDepth": dispatcher.pending if dispatcher is not None else 0,
    }
