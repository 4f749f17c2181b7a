"""
ARQ background worker for the RFID inventory API.

Runs the periodic webhook retry pass for every active tenant. The
delivery service itself owns no timer; this cron job is the only thing
that calls retry_failed on a schedule.

Start with: arq app.worker.WorkerSettings
"""
import httpx
import structlog
from arq import cron
from arq.connections import RedisSettings

from app.config import settings
from app.database import AsyncSessionLocal
from app.logging_config import configure_logging
from app.sentry_config import capture_exception, configure_sentry
from app.services.tenant_service import TenantService
from app.services.webhook_service import WebhookDeliveryService

logger = structlog.get_logger()


async def startup(ctx: dict) -> None:
    configure_logging()
    configure_sentry()
    ctx["http_client"] = httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    ctx["delivery"] = WebhookDeliveryService(AsyncSessionLocal, http_client=ctx["http_client"])
    logger.info("webhook_worker_started", redis=settings.REDIS_URL)


async def shutdown(ctx: dict) -> None:
    await ctx["http_client"].aclose()
    logger.info("webhook_worker_stopped")


async def retry_failed_webhooks(ctx: dict) -> dict:
    """
    Retry due failed deliveries of every active tenant.

    One failing tenant does not stop the pass for the others.
    """
    delivery: WebhookDeliveryService = ctx["delivery"]

    async with AsyncSessionLocal() as db:
        tenants = await TenantService(db).list_active()

    results = {}
    for tenant in tenants:
        try:
            results[tenant.client_code] = await delivery.retry_failed(tenant.client_code)
        except Exception as e:
            logger.error("webhook_retry_tenant_failed", client_code=tenant.client_code, error=str(e))
            capture_exception(e)

    logger.info("webhook_retry_cron_completed", tenants=len(tenants), delivered=sum(results.values()))
    return results


def _cron_minutes(interval: int) -> set[int]:
    interval = max(1, min(interval, 60))
    return set(range(0, 60, interval))


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq app.worker.WorkerSettings'"""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    on_startup = startup
    on_shutdown = shutdown
    job_timeout = 300
    functions = [retry_failed_webhooks]
    cron_jobs = [
        cron(
            retry_failed_webhooks,
            minute=_cron_minutes(settings.WEBHOOK_RETRY_CRON_MINUTES),
            run_at_startup=True,
            unique=True,
        )
    ]
