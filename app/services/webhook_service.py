"""
Webhook Service

Records outbound webhook deliveries and retries failed ones.

SECURITY: All queries MUST include client_code filter.
Failure to do so will result in data leakage between tenants.
"""
import asyncio
import base64
import hashlib
import hmac
from datetime import timedelta

import httpx
import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import settings
from app.logging_config import get_logger
from app.models.base import utcnow
from app.models.webhook import WebhookEvent, WebhookEventStatus
from app.routes.metrics import track_webhook_retry, track_webhook_sent
from app.sentry_config import capture_exception

logger = structlog.get_logger()

ERROR_MESSAGE_MAX_LENGTH = 1000
CANCELLED_MESSAGE = "Delivery cancelled before a response was received"


def generate_webhook_signature(payload: str, secret: str) -> str:
    """Base64 HMAC-SHA256 of the payload text keyed with the secret."""
    digest = hmac.new(
        secret.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def retry_backoff(retry_count: int) -> timedelta:
    """Delay before the next retry once retry_count attempts were made: 2, 4, 8... minutes."""
    return timedelta(minutes=2 ** retry_count)


def _error_text(error: Exception) -> str:
    text = str(error)
    message = f"{type(error).__name__}: {text}" if text else type(error).__name__
    return message[:ERROR_MESSAGE_MAX_LENGTH]


def _http_error_text(response: httpx.Response) -> str:
    return f"HTTP {response.status_code}: {response.text}"[:ERROR_MESSAGE_MAX_LENGTH]


class WebhookDeliveryService:
    """
    Delivers webhook payloads and keeps one WebhookEvent row per attempt.

    Every call works in its own session so it can run detached from the
    request that triggered it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        failure_retry_delay: timedelta | None = None,
    ):
        if session_factory is None:
            from app.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal

        self._session_factory = session_factory
        self._client = http_client
        self.timeout = timeout if timeout is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.WEBHOOK_MAX_RETRIES
        self.failure_retry_delay = failure_retry_delay or timedelta(
            minutes=settings.WEBHOOK_FAILURE_RETRY_DELAY_MINUTES
        )

    async def _post(self, url: str, payload_json: str) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        content = payload_json.encode("utf-8")

        if self._client is not None:
            return await self._client.post(url, content=content, headers=headers, timeout=self.timeout)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, content=content, headers=headers)

    async def deliver(
        self,
        event_type: str,
        webhook_url: str,
        payload_json: str,
        client_code: str,
        subscription_id: str | None = None
    ) -> WebhookEvent:
        """
        Record and perform one delivery.

        Failures are stored on the returned row, never raised:
        - non-2xx: Failed with status code and body, eligible for retry at once
        - transport error or timeout: Failed, next_retry_at = now + 5 minutes
        - cancelled mid-POST: stored like a transport error; the
          CancelledError itself still propagates
        """
        log = get_logger(client_code=client_code, event_type=event_type, target_url=webhook_url)

        async with self._session_factory() as db:
            event = WebhookEvent(
                client_code=client_code,
                subscription_id=subscription_id,
                event_type=event_type,
                webhook_url=webhook_url,
                status=WebhookEventStatus.PENDING.value,
                payload=payload_json,
                retry_count=0,
                max_retries=self.max_retries,
                created_on=utcnow(),
            )
            db.add(event)
            await db.commit()

            try:
                response = await self._post(webhook_url, payload_json)
            except asyncio.CancelledError:
                # Shutdown interrupted the POST; hand the row to the retry pass
                event.status = WebhookEventStatus.FAILED.value
                event.error_message = CANCELLED_MESSAGE
                event.next_retry_at = utcnow() + self.failure_retry_delay
                await db.commit()

                log.warning("webhook_delivery_cancelled", event_id=event.id)
                track_webhook_sent(client_code, event.status)
                raise
            except Exception as e:
                event.status = WebhookEventStatus.FAILED.value
                event.error_message = _error_text(e)
                event.retry_count = 0
                event.next_retry_at = utcnow() + self.failure_retry_delay
                await db.commit()

                log.warning("webhook_delivery_error", event_id=event.id, error=event.error_message)
                track_webhook_sent(client_code, event.status)
                return event

            event.response_status_code = response.status_code
            if response.is_success:
                event.status = WebhookEventStatus.DELIVERED.value
                event.response_body = response.text
                event.delivered_on = utcnow()
                log.info("webhook_delivered", event_id=event.id, status_code=response.status_code)
            else:
                event.status = WebhookEventStatus.FAILED.value
                event.response_body = response.text
                event.error_message = _http_error_text(response)
                log.warning("webhook_delivery_failed", event_id=event.id, status_code=response.status_code)

            await db.commit()
            track_webhook_sent(client_code, event.status)
            return event

    async def retry_failed(self, client_code: str) -> int:
        """
        Re-send due failed deliveries of a tenant.

        A row is due when it is Failed, has retries left, and its
        next_retry_at is unset or in the past. Backoff is computed from the
        moment this runs, so irregular polling shifts the schedule.

        Returns:
            Number of rows delivered successfully in this pass
        """
        now = utcnow()
        async with self._session_factory() as db:
            stmt = (
                select(WebhookEvent.id)
                .where(
                    WebhookEvent.client_code == client_code,
                    WebhookEvent.status == WebhookEventStatus.FAILED.value,
                    WebhookEvent.retry_count < WebhookEvent.max_retries,
                    or_(
                        WebhookEvent.next_retry_at.is_(None),
                        WebhookEvent.next_retry_at <= now,
                    ),
                )
                .order_by(WebhookEvent.created_on)
            )
            result = await db.execute(stmt)
            event_ids = list(result.scalars().all())

        retried = 0
        for event_id in event_ids:
            try:
                if await self._retry_one(event_id, client_code):
                    retried += 1
            except Exception as e:
                logger.error(
                    "webhook_retry_crashed",
                    client_code=client_code,
                    event_id=event_id,
                    error=str(e),
                )
                capture_exception(e)

        logger.info("webhook_retry_pass_completed", client_code=client_code, due=len(event_ids), delivered=retried)
        return retried

    async def _retry_one(self, event_id: str, client_code: str) -> bool:
        async with self._session_factory() as db:
            event = await db.get(WebhookEvent, event_id)
            if event is None or event.client_code != client_code:
                return False

            # Claim the row with a single conditional UPDATE so overlapping
            # passes cannot both retry it or lose a retry_count increment.
            attempt = event.retry_count + 1
            claim = (
                update(WebhookEvent)
                .where(
                    WebhookEvent.id == event_id,
                    WebhookEvent.client_code == client_code,
                    WebhookEvent.status == WebhookEventStatus.FAILED.value,
                    WebhookEvent.retry_count == event.retry_count,
                    WebhookEvent.retry_count < WebhookEvent.max_retries,
                )
                .values(
                    retry_count=attempt,
                    status=WebhookEventStatus.RETRYING.value,
                    next_retry_at=utcnow() + retry_backoff(attempt),
                )
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(claim)
            await db.commit()

            if result.rowcount != 1:
                logger.info("webhook_retry_skipped", client_code=client_code, event_id=event_id)
                return False

            await db.refresh(event)
            log = get_logger(
                client_code=client_code,
                event_id=event_id,
                event_type=event.event_type,
                target_url=event.webhook_url,
                retry_count=attempt,
            )

            try:
                response = await self._post(event.webhook_url, event.payload)
            except asyncio.CancelledError:
                event.status = WebhookEventStatus.FAILED.value
                event.error_message = CANCELLED_MESSAGE
                await db.commit()

                log.warning("webhook_retry_cancelled")
                track_webhook_retry(client_code, event.status)
                raise
            except Exception as e:
                event.status = WebhookEventStatus.FAILED.value
                event.error_message = _error_text(e)
                await db.commit()

                log.warning("webhook_retry_error", error=event.error_message)
                track_webhook_retry(client_code, event.status)
                return False

            event.response_status_code = response.status_code
            event.response_body = response.text
            if response.is_success:
                event.status = WebhookEventStatus.DELIVERED.value
                event.error_message = None
                event.delivered_on = utcnow()
                await db.commit()

                log.info("webhook_retry_delivered", status_code=response.status_code)
                track_webhook_retry(client_code, event.status)
                return True

            event.status = WebhookEventStatus.FAILED.value
            event.error_message = _http_error_text(response)
            await db.commit()

            log.warning("webhook_retry_failed", status_code=response.status_code)
            track_webhook_retry(client_code, event.status)
            return False

    async def list_events(
        self,
        client_code: str,
        event_type: str | None = None,
        page: int = 1,
        page_size: int = 50
    ) -> list[WebhookEvent]:
        """
        Get delivery history for a tenant, newest first.

        Args:
            client_code: Tenant client code
            event_type: Exact event type filter (optional)
            page: 1-based page number
            page_size: Rows per page
        """
        page = max(page, 1)
        page_size = max(page_size, 1)

        stmt = select(WebhookEvent).where(WebhookEvent.client_code == client_code)
        if event_type:
            stmt = stmt.where(WebhookEvent.event_type == event_type)
        stmt = (
            stmt.order_by(WebhookEvent.created_on.desc(), WebhookEvent.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())
