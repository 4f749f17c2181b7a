"""
Dispatcher: fan-out to subscribers, the bounded queue and shutdown drain.
"""
import asyncio
import json
from datetime import timedelta

from sqlalchemy import select, update

from app.models.base import utcnow
from app.models.webhook import WebhookEvent, WebhookEventStatus
from app.services.webhook_dispatcher import TriggerRequest, WebhookDispatcher, trigger_safely
from app.services.webhook_service import generate_webhook_signature
from app.services.webhook_subscription_service import WebhookSubscriptionService


async def _subscribe(session_factory, client_code, pattern, url, secret=None):
    async with session_factory() as db:
        return await WebhookSubscriptionService(db).subscribe(client_code, pattern, url, secret_key=secret)


async def _events(session_factory, client_code=None) -> list[WebhookEvent]:
    stmt = select(WebhookEvent).order_by(WebhookEvent.created_on)
    if client_code:
        stmt = stmt.where(WebhookEvent.client_code == client_code)
    async with session_factory() as db:
        return list((await db.execute(stmt)).scalars().all())


async def test_trigger_without_subscribers_creates_no_rows(dispatcher, session_factory, receiver):
    assert await dispatcher.trigger("invoice.created", {"invoiceId": 1}, "ACME") is True
    await dispatcher.join()

    assert await _events(session_factory) == []
    assert receiver.requests == []


async def test_signed_delivery_to_exact_subscription(dispatcher, session_factory, receiver):
    subscription = await _subscribe(
        session_factory, "ACME", "invoice.created", "https://erp.example.com/hooks", secret="s3cr3t"
    )

    await dispatcher.trigger("invoice.created", {"invoiceId": 42}, "ACME")
    await dispatcher.join()

    events = await _events(session_factory)
    assert len(events) == 1
    event = events[0]
    assert event.status == WebhookEventStatus.DELIVERED.value
    assert event.subscription_id == subscription.id
    assert event.webhook_url == "https://erp.example.com/hooks"
    assert '"invoiceId":42' in event.payload

    body = json.loads(receiver.requests[0].content)
    assert body["eventType"] == "invoice.created"
    assert body["clientCode"] == "ACME"
    signature = body.pop("signature")
    assert signature == generate_webhook_signature(json.dumps(body, separators=(",", ":")), "s3cr3t")


async def test_unsigned_when_subscription_has_no_secret(dispatcher, session_factory, receiver):
    await _subscribe(session_factory, "ACME", "*", "https://erp.example.com/all")

    await dispatcher.trigger("customer.created", {"customerId": 7}, "ACME")
    await dispatcher.join()

    body = json.loads(receiver.requests[0].content)
    assert "signature" not in body


async def test_prefix_subscription_does_not_receive_other_events(dispatcher, session_factory, receiver):
    await _subscribe(session_factory, "ACME", "quotation.*", "https://erp.example.com/quotes")

    await dispatcher.trigger("invoice.updated", {"invoiceId": 3}, "ACME")
    await dispatcher.join()

    assert await _events(session_factory) == []


async def test_other_tenants_subscriptions_are_ignored(dispatcher, session_factory, receiver):
    await _subscribe(session_factory, "BETA", "*", "https://beta.example.com/hooks")

    await dispatcher.trigger("invoice.created", {"invoiceId": 1}, "ACME")
    await dispatcher.join()

    assert await _events(session_factory) == []


async def test_specific_url_gets_its_own_row(dispatcher, session_factory, receiver):
    await _subscribe(session_factory, "ACME", "invoice.*", "https://erp.example.com/hooks", secret="k")

    deliveries = await dispatcher.dispatch(TriggerRequest(
        event_type="invoice.created",
        payload={"invoiceId": 5},
        client_code="ACME",
        specific_url="https://adhoc.example.com/once",
    ))

    assert len(deliveries) == 2
    adhoc = next(e for e in deliveries if e.webhook_url == "https://adhoc.example.com/once")
    assert adhoc.subscription_id is None
    assert "signature" not in json.loads(adhoc.payload)
    assert sorted(receiver.urls()) == [
        "https://adhoc.example.com/once",
        "https://erp.example.com/hooks",
    ]


async def test_failing_target_does_not_affect_others(dispatcher, session_factory, receiver):
    await _subscribe(session_factory, "ACME", "*", "https://one.example.com/h")
    await _subscribe(session_factory, "ACME", "*", "https://two.example.com/h")

    receiver.failing_hosts.add("one.example.com")

    deliveries = await dispatcher.dispatch(TriggerRequest("customer.created", {"customerId": 1}, "ACME"))

    statuses = {e.webhook_url: e.status for e in deliveries}
    assert statuses == {
        "https://one.example.com/h": WebhookEventStatus.FAILED.value,
        "https://two.example.com/h": WebhookEventStatus.DELIVERED.value,
    }


async def test_trigger_is_rejected_when_not_running(delivery, session_factory):
    dispatcher = WebhookDispatcher(delivery, session_factory, maxsize=10, worker_count=1)
    assert dispatcher.running is False
    assert await dispatcher.trigger("invoice.created", {}, "ACME") is False


async def test_full_queue_applies_back_pressure(delivery, session_factory, receiver):
    await _subscribe(session_factory, "ACME", "*", "https://slow.example.com/h")
    receiver.gate = asyncio.Event()

    dispatcher = WebhookDispatcher(delivery, session_factory, maxsize=1, worker_count=1, enqueue_timeout=0.05)
    await dispatcher.start()
    try:
        assert await dispatcher.trigger("a.created", {}, "ACME") is True
        # the only worker is now blocked on the slow subscriber
        await asyncio.wait_for(receiver.started.wait(), timeout=5)

        assert await dispatcher.trigger("b.created", {}, "ACME") is True
        assert dispatcher.pending == 1
        assert await dispatcher.trigger("c.created", {}, "ACME") is False

        receiver.gate.set()
        await asyncio.wait_for(dispatcher.join(), timeout=5)
    finally:
        await dispatcher.stop(drain=False)

    events = await _events(session_factory)
    assert sorted(e.event_type for e in events) == ["a.created", "b.created"]


async def test_stop_drains_accepted_triggers(delivery, session_factory, receiver):
    await _subscribe(session_factory, "ACME", "*", "https://erp.example.com/h")

    dispatcher = WebhookDispatcher(delivery, session_factory, maxsize=50, worker_count=2)
    await dispatcher.start()
    for n in range(5):
        assert await dispatcher.trigger("customer.created", {"customerId": n}, "ACME") is True

    await dispatcher.stop(drain=True, timeout=10)

    assert dispatcher.running is False
    events = await _events(session_factory)
    assert len(events) == 5
    assert all(e.status == WebhookEventStatus.DELIVERED.value for e in events)
    assert await dispatcher.trigger("customer.created", {}, "ACME") is False


async def test_trigger_safely_never_raises(recording_dispatcher):
    recording_dispatcher.fail = True
    await trigger_safely(recording_dispatcher, "customer.created", {}, "ACME")
    await trigger_safely(None, "customer.created", {}, "ACME")
    assert recording_dispatcher.calls == []


async def test_drain_timeout_leaves_interrupted_delivery_retryable(delivery, session_factory, receiver):
    await _subscribe(session_factory, "ACME", "*", "https://slow.example.com/h")
    receiver.gate = asyncio.Event()

    dispatcher = WebhookDispatcher(delivery, session_factory, maxsize=10, worker_count=1)
    await dispatcher.start()
    assert await dispatcher.trigger("customer.created", {"customerId": 1}, "ACME") is True
    await asyncio.wait_for(receiver.started.wait(), timeout=5)

    await dispatcher.stop(drain=True, timeout=0.1)

    [event] = await _events(session_factory)
    assert event.status == WebhookEventStatus.FAILED.value
    assert event.retry_count == 0
    assert event.next_retry_at is not None
    assert "cancelled" in event.error_message

    # once due, the next retry pass delivers it
    async with session_factory() as db:
        await db.execute(
            update(WebhookEvent)
            .where(WebhookEvent.id == event.id)
            .values(next_retry_at=utcnow() - timedelta(minutes=1))
        )
        await db.commit()
    receiver.gate.set()

    assert await delivery.retry_failed("ACME") == 1
    [event] = await _events(session_factory)
    assert event.status == WebhookEventStatus.DELIVERED.value
