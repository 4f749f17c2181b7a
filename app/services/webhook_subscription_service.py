"""
Webhook subscription store.

SECURITY: All queries MUST include client_code filter.
Failure to do so will result in data leakage between tenants.
"""
import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.webhook import WebhookSubscription

logger = structlog.get_logger()

WILDCARD = "*"
PREFIX_WILDCARD_SUFFIX = ".*"


class InvalidSubscriptionInput(ValueError):
    """Raised when a subscription request is rejected before persistence."""


def event_type_matches(pattern: str, event_type: str) -> bool:
    """
    Check whether a subscription pattern covers an event type.

    Matches on exact name, the universal "*", or "<prefix>.*" where the
    event type starts with <prefix>.
    """
    if pattern == event_type or pattern == WILDCARD:
        return True
    if pattern.endswith(PREFIX_WILDCARD_SUFFIX):
        return event_type.startswith(pattern[:-len(PREFIX_WILDCARD_SUFFIX)])
    return False


def validate_event_pattern(pattern: str | None) -> str:
    """Return the normalised pattern or raise InvalidSubscriptionInput."""
    pattern = (pattern or "").strip()
    if not pattern:
        raise InvalidSubscriptionInput("Event type pattern is required")
    if len(pattern) > 100:
        raise InvalidSubscriptionInput("Event type pattern must be at most 100 characters")
    if pattern == WILDCARD:
        return pattern

    name = pattern[:-len(PREFIX_WILDCARD_SUFFIX)] if pattern.endswith(PREFIX_WILDCARD_SUFFIX) else pattern
    if not name or WILDCARD in name or any(ch.isspace() for ch in name):
        raise InvalidSubscriptionInput(
            f"Invalid event type pattern {pattern!r}: use an event name, '*' or '<prefix>.*'"
        )
    return pattern


def validate_webhook_url(url: str | None) -> str:
    """Only absolute https URLs are accepted as delivery targets."""
    url = (url or "").strip()
    if not url:
        raise InvalidSubscriptionInput("Webhook URL is required")
    if len(url) > 500:
        raise InvalidSubscriptionInput("Webhook URL must be at most 500 characters")

    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise InvalidSubscriptionInput(f"Invalid webhook URL: {e}") from e

    if parsed.scheme != "https":
        raise InvalidSubscriptionInput("Webhook URL must use https")
    if not parsed.host:
        raise InvalidSubscriptionInput("Webhook URL must include a host")
    return url


class WebhookSubscriptionService:
    """Service for managing tenant webhook subscriptions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def subscribe(
        self,
        client_code: str,
        event_type: str,
        webhook_url: str,
        secret_key: str | None = None,
        description: str | None = None
    ) -> WebhookSubscription:
        """
        Create an active subscription.

        Several subscriptions may share a pattern; all of them receive
        deliveries.

        Raises:
            InvalidSubscriptionInput: empty/malformed pattern, non-https URL,
                or oversized secret/description
        """
        event_type = validate_event_pattern(event_type)
        webhook_url = validate_webhook_url(webhook_url)
        if secret_key is not None and len(secret_key) > 500:
            raise InvalidSubscriptionInput("Secret key must be at most 500 characters")
        if description is not None and len(description) > 50:
            raise InvalidSubscriptionInput("Description must be at most 50 characters")

        subscription = WebhookSubscription(
            client_code=client_code,
            event_type=event_type,
            webhook_url=webhook_url,
            secret_key=secret_key or None,
            description=description,
            is_active=True,
            created_on=utcnow(),
        )
        self.db.add(subscription)
        await self.db.commit()
        await self.db.refresh(subscription)

        logger.info(
            "webhook_subscription_created",
            subscription_id=subscription.id,
            client_code=client_code,
            event_type=event_type,
        )
        return subscription

    async def unsubscribe(self, subscription_id: str, client_code: str) -> bool:
        """
        Soft-deactivate a subscription owned by client_code.

        Returns False when it does not exist or belongs to another tenant;
        the two cases are indistinguishable to the caller.
        """
        stmt = select(WebhookSubscription).where(
            WebhookSubscription.id == subscription_id,
            WebhookSubscription.client_code == client_code,
        )
        result = await self.db.execute(stmt)
        subscription = result.scalar_one_or_none()

        if not subscription:
            return False

        subscription.is_active = False
        subscription.updated_on = utcnow()
        await self.db.commit()

        logger.info(
            "webhook_subscription_deactivated",
            subscription_id=subscription_id,
            client_code=client_code,
        )
        return True

    async def get_active(self, client_code: str) -> list[WebhookSubscription]:
        """Get all active subscriptions of a tenant, oldest first."""
        stmt = (
            select(WebhookSubscription)
            .where(
                WebhookSubscription.client_code == client_code,
                WebhookSubscription.is_active.is_(True),
            )
            .order_by(WebhookSubscription.created_on)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_subscriptions(
        self,
        client_code: str,
        event_type: str | None = None
    ) -> list[WebhookSubscription]:
        """
        List active subscriptions.

        With event_type, only subscriptions whose pattern equals it or is
        a wildcard covering it are returned.
        """
        subscriptions = await self.get_active(client_code)
        if not event_type:
            return subscriptions
        return [s for s in subscriptions if event_type_matches(s.event_type, event_type)]
