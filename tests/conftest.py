"""
Shared fixtures.

Every test gets its own temporary SQLite control-plane database and one
SQLite file per tenant database, plus an httpx MockTransport standing in
for the subscribers' endpoints.
"""
import asyncio
import os
import tempfile

# Must be set before app.config is imported anywhere
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{tempfile.mkdtemp(prefix='rfid-control-')}/control.db",
)
os.environ.setdefault("SENTRY_DSN", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models import tenant, webhook  # noqa: F401  registers control-plane tables
from app.models.base import Base
from app.services.jwt_service import JWTService
from app.services.tenant_resolver import TenantResolver
from app.services.tenant_service import TenantService
from app.services.webhook_dispatcher import WebhookDispatcher
from app.services.webhook_service import WebhookDeliveryService


class Receiver:
    """
    Records POSTed webhook requests and answers them.

    Set `status`/`body` for a fixed response, `error` to raise a transport
    exception, `failing_hosts` to refuse some hosts, or `gate` (an
    asyncio.Event) to hold requests until set.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status = 200
        self.body = "ok"
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.failing_hosts: set[str] = set()
        self.started = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.started.set()
        if request.url.host in self.failing_hosts:
            raise httpx.ConnectError("connection refused", request=request)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, text=self.body)

    def fail_with_timeout(self):
        self.error = httpx.ReadTimeout("timed out")

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


class RecordingDispatcher:
    """Dispatcher stand-in that records trigger calls."""

    def __init__(self, fail: bool = False):
        self.calls: list[tuple[str, dict, str]] = []
        self.fail = fail

    async def trigger(self, event_type, payload, client_code, specific_url=None):
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.calls.append((event_type, payload, client_code))
        return True

    def event_types(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
async def control_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/control.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(control_engine):
    return async_sessionmaker(control_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def resolver(tmp_path, session_factory):
    resolver = TenantResolver(session_factory, f"sqlite+aiosqlite:///{tmp_path}/{{database}}.db")
    yield resolver
    await resolver.dispose()


@pytest.fixture
async def tenants(session_factory):
    """Two active tenants: ACME and BETA."""
    async with session_factory() as db:
        service = TenantService(db)
        await service.register("ACME", "Acme Jewellers")
        await service.register("BETA", "Beta Gold")
    return ["ACME", "BETA"]


@pytest.fixture
def receiver():
    return Receiver()


@pytest.fixture
async def http_client(receiver):
    client = httpx.AsyncClient(transport=httpx.MockTransport(receiver))
    yield client
    await client.aclose()


@pytest.fixture
def delivery(session_factory, http_client):
    return WebhookDeliveryService(session_factory, http_client=http_client)


@pytest.fixture
async def dispatcher(delivery, session_factory):
    dispatcher = WebhookDispatcher(
        delivery,
        session_factory,
        maxsize=100,
        worker_count=2,
        enqueue_timeout=0.1,
    )
    await dispatcher.start()
    yield dispatcher
    await dispatcher.stop(drain=False)


@pytest.fixture
def recording_dispatcher():
    return RecordingDispatcher()


def make_token(client_code: str | None = "ACME", role: str = "user") -> str:
    return JWTService().create_token("user-1", client_code, role, "owner@example.com")


def auth_headers(client_code: str | None = "ACME", role: str = "user") -> dict:
    return {"Authorization": f"Bearer {make_token(client_code, role)}"}
