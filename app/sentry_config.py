"""
Sentry configuration for error tracking.

Captures unhandled exceptions, including those raised inside detached
webhook delivery work, with the tenant's client code attached.
"""
import sentry_sdk
import structlog
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from app.config import settings

logger = structlog.get_logger()


def configure_sentry():
    """
    Initialize Sentry with FastAPI and SQLAlchemy integrations.

    Requires SENTRY_DSN environment variable to be set.
    """
    dsn = settings.SENTRY_DSN

    if not dsn:
        logger.warning("sentry_disabled", reason="SENTRY_DSN not set")
        return

    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        before_send=add_context,
        # Sample rate: capture 10% of transactions for performance monitoring
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.APP_VERSION,
    )

    logger.info("sentry_initialized", environment=settings.ENVIRONMENT)


def add_context(event, hint):
    """
    Promote the client code from structlog context to a Sentry tag.

    Lets errors be grouped per tenant.
    """
    context = structlog.contextvars.get_contextvars()
    client_code = context.get("client_code")
    if client_code:
        event.setdefault("tags", {})["client_code"] = client_code
    return event


def capture_exception(exc_info=None):
    """
    Capture an exception to Sentry.

    Usage:
        try:
            # some code
        except Exception:
            capture_exception()
    """
    if sentry_sdk.get_client().is_active():
        sentry_sdk.capture_exception(exc_info)
