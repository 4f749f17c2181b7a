"""
Delivery recording and the retry pass.
"""
from datetime import timedelta

import httpx
from sqlalchemy import update

from app.models.base import utcnow
from app.models.webhook import WebhookEvent, WebhookEventStatus
from app.services.webhook_service import retry_backoff

URL = "https://hooks.example.com/acme"
PAYLOAD = '{"eventType":"invoice.created","clientCode":"ACME","timestamp":"2026-03-01T10:15:30Z","data":{"invoiceId":42}}'


async def _load(session_factory, event_id) -> WebhookEvent:
    async with session_factory() as db:
        return await db.get(WebhookEvent, event_id)


async def _make_due(session_factory, event_id):
    async with session_factory() as db:
        await db.execute(
            update(WebhookEvent)
            .where(WebhookEvent.id == event_id)
            .values(next_retry_at=utcnow() - timedelta(seconds=1))
        )
        await db.commit()


def _close_to(value, expected, tolerance=timedelta(seconds=30)):
    return value is not None and abs(value - expected) < tolerance


async def test_successful_delivery(delivery, receiver, session_factory):
    receiver.body = '{"received":true}'

    event = await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME", subscription_id="sub-1")

    stored = await _load(session_factory, event.id)
    assert stored.status == WebhookEventStatus.DELIVERED.value
    assert stored.response_status_code == 200
    assert stored.response_body == '{"received":true}'
    assert stored.delivered_on is not None
    assert stored.retry_count == 0
    assert stored.max_retries == 3
    assert stored.subscription_id == "sub-1"

    request = receiver.requests[0]
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/json"
    assert request.content == PAYLOAD.encode()


async def test_non_2xx_is_failed_without_scheduled_retry(delivery, receiver, session_factory):
    receiver.status = 500
    receiver.body = "boom"

    event = await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME")

    stored = await _load(session_factory, event.id)
    assert stored.status == WebhookEventStatus.FAILED.value
    assert stored.response_status_code == 500
    assert stored.error_message == "HTTP 500: boom"
    assert stored.next_retry_at is None
    assert stored.delivered_on is None
    assert len(receiver.requests) == 1


async def test_timeout_is_failed_with_retry_in_five_minutes(delivery, receiver, session_factory):
    receiver.fail_with_timeout()

    event = await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME")

    stored = await _load(session_factory, event.id)
    assert stored.status == WebhookEventStatus.FAILED.value
    assert stored.error_message
    assert "ReadTimeout" in stored.error_message
    assert stored.retry_count == 0
    assert _close_to(stored.next_retry_at, utcnow() + timedelta(minutes=5))


async def test_retry_replays_stored_payload_byte_for_byte(delivery, receiver, session_factory):
    receiver.status = 503
    event = await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME")

    receiver.status = 200
    delivered = await delivery.retry_failed("ACME")

    assert delivered == 1
    assert len(receiver.requests) == 2
    assert receiver.requests[1].content == receiver.requests[0].content

    stored = await _load(session_factory, event.id)
    assert stored.status == WebhookEventStatus.DELIVERED.value
    assert stored.retry_count == 1
    assert stored.error_message is None


async def test_retry_backoff_doubles_until_exhausted(delivery, receiver, session_factory):
    receiver.fail_with_timeout()
    event = await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME")

    for attempt, minutes in [(1, 2), (2, 4), (3, 8)]:
        await _make_due(session_factory, event.id)
        assert await delivery.retry_failed("ACME") == 0

        stored = await _load(session_factory, event.id)
        assert stored.status == WebhookEventStatus.FAILED.value
        assert stored.retry_count == attempt
        assert _close_to(stored.next_retry_at, utcnow() + timedelta(minutes=minutes))

    # Exhausted rows are never selected again
    await _make_due(session_factory, event.id)
    posted = len(receiver.requests)
    assert await delivery.retry_failed("ACME") == 0
    assert len(receiver.requests) == posted

    stored = await _load(session_factory, event.id)
    assert stored.retry_count == stored.max_retries == 3
    assert stored.status == WebhookEventStatus.FAILED.value


async def test_rows_not_yet_due_are_skipped(delivery, receiver):
    receiver.fail_with_timeout()
    await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME")

    assert await delivery.retry_failed("ACME") == 0
    assert len(receiver.requests) == 1


async def test_retry_only_touches_the_given_tenant(delivery, receiver, session_factory):
    receiver.status = 500
    acme = await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME")
    beta = await delivery.deliver("invoice.created", URL, PAYLOAD, "BETA")

    receiver.status = 200
    assert await delivery.retry_failed("BETA") == 1

    assert (await _load(session_factory, acme.id)).status == WebhookEventStatus.FAILED.value
    assert (await _load(session_factory, beta.id)).status == WebhookEventStatus.DELIVERED.value


async def test_overlapping_claims_retry_a_row_once(delivery, receiver, session_factory):
    receiver.status = 500
    event = await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME")

    receiver.status = 200
    first = await delivery._retry_one(event.id, "ACME")
    second = await delivery._retry_one(event.id, "ACME")

    assert first is True
    assert second is False
    stored = await _load(session_factory, event.id)
    assert stored.retry_count == 1


async def test_one_broken_row_does_not_stop_the_pass(delivery, receiver, session_factory, monkeypatch):
    receiver.status = 500
    broken = await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME")
    healthy = await delivery.deliver("invoice.created", URL, PAYLOAD, "ACME")

    original = delivery._retry_one

    async def flaky(event_id, client_code):
        if event_id == broken.id:
            raise RuntimeError("database hiccup")
        return await original(event_id, client_code)

    monkeypatch.setattr(delivery, "_retry_one", flaky)
    receiver.status = 200

    assert await delivery.retry_failed("ACME") == 1
    assert (await _load(session_factory, healthy.id)).status == WebhookEventStatus.DELIVERED.value


async def test_list_events_newest_first_and_paged(delivery, receiver, session_factory):
    ids = []
    for n in range(5):
        event = await delivery.deliver("invoice.created" if n % 2 else "customer.created", URL, PAYLOAD, "ACME")
        ids.append(event.id)
        async with session_factory() as db:
            await db.execute(
                update(WebhookEvent)
                .where(WebhookEvent.id == event.id)
                .values(created_on=utcnow() - timedelta(minutes=10 - n))
            )
            await db.commit()
    await delivery.deliver("invoice.created", URL, PAYLOAD, "BETA")

    page_one = await delivery.list_events("ACME", page=1, page_size=2)
    page_two = await delivery.list_events("ACME", page=2, page_size=2)
    invoices = await delivery.list_events("ACME", event_type="invoice.created")

    assert [e.id for e in page_one] == [ids[4], ids[3]]
    assert [e.id for e in page_two] == [ids[2], ids[1]]
    assert {e.id for e in invoices} == {ids[1], ids[3]}
    assert all(e.client_code == "ACME" for e in invoices)


def test_retry_backoff_minutes():
    assert [retry_backoff(n) for n in (1, 2, 3)] == [
        timedelta(minutes=2),
        timedelta(minutes=4),
        timedelta(minutes=8),
    ]


async def test_per_call_client_is_used_without_injected_client(session_factory, monkeypatch):
    from app.services.webhook_service import WebhookDeliveryService

    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(204)

    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)

    service = WebhookDeliveryService(session_factory)
    event = await service.deliver("invoice.created", URL, PAYLOAD, "ACME")

    assert event.status == WebhookEventStatus.DELIVERED.value
    assert event.response_status_code == 204
    assert len(seen) == 1
