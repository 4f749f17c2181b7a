"""
Webhook Dispatcher

Turns "event X happened for tenant T" into signed deliveries to every
matching subscriber.

Trigger calls are put on a bounded asyncio queue and processed by a
fixed pool of worker tasks, so the triggering request returns at once,
a flood of events applies back-pressure instead of spawning unbounded
tasks, and shutdown can drain what was already accepted.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, field_serializer, model_serializer
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import settings
from app.models.base import utcnow
from app.models.webhook import WebhookEvent, WebhookSubscription
from app.routes.metrics import track_webhook_rejected, track_webhook_triggered, update_queue_depth
from app.sentry_config import capture_exception
from app.services.webhook_service import WebhookDeliveryService, generate_webhook_signature
from app.services.webhook_subscription_service import WebhookSubscriptionService, event_type_matches

logger = structlog.get_logger()


TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(value: datetime) -> str:
    """UTC, second precision, trailing Z. Naive values are taken as UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


class WebhookPayload(BaseModel):
    """Wire body POSTed to subscribers (camelCase keys)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_type: str
    client_code: str
    timestamp: datetime
    data: Any = None
    signature: str | None = None

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)

    @model_serializer(mode="wrap")
    def _drop_missing_signature(self, handler):
        body = handler(self)
        if body.get("signature") is None:
            body.pop("signature", None)
        return body

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


@dataclass
class DeliveryTarget:
    """One URL to notify; subscription_id is None for ad-hoc URLs."""
    webhook_url: str
    secret_key: str | None = None
    subscription_id: str | None = None


@dataclass
class TriggerRequest:
    event_type: str
    payload: Any
    client_code: str
    specific_url: str | None = None
    timestamp: datetime = field(default_factory=utcnow)


def match_targets(
    subscriptions: list[WebhookSubscription],
    event_type: str,
    specific_url: str | None = None
) -> list[DeliveryTarget]:
    """Targets for an event: matching subscriptions plus the ad-hoc URL if any."""
    targets = [
        DeliveryTarget(
            webhook_url=s.webhook_url,
            secret_key=s.secret_key,
            subscription_id=s.id,
        )
        for s in subscriptions
        if s.is_active and event_type_matches(s.event_type, event_type)
    ]
    if specific_url:
        targets.append(DeliveryTarget(webhook_url=specific_url))
    return targets


def build_payload_json(
    event_type: str,
    client_code: str,
    data: Any,
    timestamp: datetime,
    secret_key: str | None = None
) -> str:
    """
    Serialize the wire payload for one target.

    With a secret, the signature is the HMAC of the unsigned JSON and is
    embedded before serializing again. The returned text is stored and
    replayed verbatim on retry.
    """
    payload = WebhookPayload(
        event_type=event_type,
        client_code=client_code,
        timestamp=timestamp,
        data=data,
    )
    if not secret_key:
        return payload.to_json()

    signature = generate_webhook_signature(payload.to_json(), secret_key)
    return payload.model_copy(update={"signature": signature}).to_json()


class WebhookDispatcher:
    """Bounded queue of trigger requests consumed by a worker pool."""

    def __init__(
        self,
        delivery_service: WebhookDeliveryService,
        session_factory: async_sessionmaker | None = None,
        maxsize: int | None = None,
        worker_count: int | None = None,
        enqueue_timeout: float | None = None,
    ):
        if session_factory is None:
            from app.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal

        self._delivery = delivery_service
        self._session_factory = session_factory
        self._maxsize = maxsize if maxsize is not None else settings.WEBHOOK_QUEUE_MAXSIZE
        self._worker_count = worker_count or settings.WEBHOOK_WORKER_COUNT
        self._enqueue_timeout = (
            enqueue_timeout if enqueue_timeout is not None
            else settings.WEBHOOK_ENQUEUE_TIMEOUT_SECONDS
        )
        self._queue: asyncio.Queue[TriggerRequest] | None = None
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        """Create the queue and spawn the workers."""
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"webhook-worker-{n}")
            for n in range(self._worker_count)
        ]
        logger.info("webhook_dispatcher_started", workers=self._worker_count, maxsize=self._maxsize)

    async def stop(self, drain: bool = True, timeout: float | None = None) -> None:
        """
        Stop the workers.

        With drain, requests already accepted are processed first (up to
        timeout seconds); anything left is dropped and logged.
        """
        if not self.running:
            return

        if drain:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("webhook_dispatcher_drain_timeout", dropped=self._queue.qsize())
        elif self._queue.qsize():
            logger.warning("webhook_dispatcher_dropping", dropped=self._queue.qsize())

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        update_queue_depth(0)
        logger.info("webhook_dispatcher_stopped")

    async def join(self) -> None:
        """Wait until every accepted request has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def trigger(
        self,
        event_type: str,
        payload: Any,
        client_code: str,
        specific_url: str | None = None
    ) -> bool:
        """
        Accept an event for asynchronous delivery.

        Never raises for delivery problems and never waits for delivery.
        Returns False when the event could not be queued (dispatcher
        stopped, or queue still full after the enqueue timeout).
        """
        log = logger.bind(client_code=client_code, event_type=event_type)

        if not self.running:
            log.warning("webhook_dispatcher_not_running")
            track_webhook_rejected(client_code)
            return False

        request = TriggerRequest(
            event_type=event_type,
            payload=payload,
            client_code=client_code,
            specific_url=specific_url,
        )
        try:
            await asyncio.wait_for(self._queue.put(request), timeout=self._enqueue_timeout)
        except asyncio.TimeoutError:
            log.warning("webhook_queue_full", maxsize=self._maxsize)
            track_webhook_rejected(client_code)
            return False

        track_webhook_triggered(client_code, event_type)
        update_queue_depth(self._queue.qsize())
        return True

    async def dispatch(self, request: TriggerRequest) -> list[WebhookEvent]:
        """
        Deliver one trigger request to all of its targets.

        Targets are delivered concurrently; one failing target does not
        affect the others.
        """
        async with self._session_factory() as db:
            subscriptions = await WebhookSubscriptionService(db).get_active(request.client_code)

        targets = match_targets(subscriptions, request.event_type, request.specific_url)
        if not targets:
            logger.debug(
                "webhook_no_subscribers",
                client_code=request.client_code,
                event_type=request.event_type,
            )
            return []

        results = await asyncio.gather(
            *(self._deliver_target(request, target) for target in targets),
            return_exceptions=True,
        )

        deliveries = []
        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error(
                    "webhook_target_crashed",
                    client_code=request.client_code,
                    event_type=request.event_type,
                    target_url=target.webhook_url,
                    error=str(result),
                )
                capture_exception(result)
            else:
                deliveries.append(result)
        return deliveries

    async def _deliver_target(self, request: TriggerRequest, target: DeliveryTarget) -> WebhookEvent:
        payload_json = build_payload_json(
            event_type=request.event_type,
            client_code=request.client_code,
            data=request.payload,
            timestamp=request.timestamp,
            secret_key=target.secret_key,
        )
        return await self._delivery.deliver(
            event_type=request.event_type,
            webhook_url=target.webhook_url,
            payload_json=payload_json,
            client_code=request.client_code,
            subscription_id=target.subscription_id,
        )

    async def _worker(self, worker_id: int) -> None:
        while True:
            request = await self._queue.get()
            try:
                await self.dispatch(request)
            except Exception as e:
                logger.error(
                    "webhook_dispatch_failed",
                    worker=worker_id,
                    client_code=request.client_code,
                    event_type=request.event_type,
                    error=str(e),
                )
                capture_exception(e)
            finally:
                self._queue.task_done()
                update_queue_depth(self._queue.qsize())


async def trigger_safely(
    dispatcher: WebhookDispatcher | None,
    event_type: str,
    payload: Any,
    client_code: str
) -> None:
    """Trigger from a business operation; problems are logged, never raised."""
    if dispatcher is None:
        return
    try:
        await dispatcher.trigger(event_type, payload, client_code)
    except Exception as e:
        logger.warning(
            "webhook_trigger_failed",
            client_code=client_code,
            event_type=event_type,
            error=str(e),
        )
