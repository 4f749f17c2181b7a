"""
Tenant resolver.

Maps a client code to the tenant's own database and hands out sessions
that are pinned to that tenant.

SECURITY: Every SELECT, UPDATE and DELETE issued through a tenant session
gets a `client_code == <tenant>` criteria on all TenantScopedMixin models, and
every flushed row is checked against the session's client code. The
client code travels with the session (Session.info), never through
process-wide state, so concurrent requests cannot see each other's tenant.
"""
import asyncio

import structlog
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, with_loader_criteria

from app.models import customer, quotation  # noqa: F401  registers tenant tables
from app.models.base import TenantBase, TenantScopedMixin
from app.models.tenant import Tenant

logger = structlog.get_logger()

TENANT_INFO_KEY = "client_code"


class TenantNotFound(Exception):
    """Raised when a client code has no active tenant database mapping."""

    def __init__(self, client_code: str | None):
        self.client_code = client_code
        super().__init__(f"Tenant not found: {client_code!r}")


class TenantSession(Session):
    """Sync session class used behind every tenant AsyncSession."""


@event.listens_for(TenantSession, "do_orm_execute")
def _add_tenant_criteria(execute_state):
    client_code = execute_state.session.info.get(TENANT_INFO_KEY)
    if client_code is None:
        raise RuntimeError("Tenant session has no client code")

    if execute_state.is_select and (execute_state.is_column_load or execute_state.is_relationship_load):
        return

    if execute_state.is_select or execute_state.is_update or execute_state.is_delete:
        execute_state.statement = execute_state.statement.options(
            with_loader_criteria(
                TenantScopedMixin,
                lambda cls: cls.client_code == client_code,
                include_aliases=True,
            )
        )


@event.listens_for(TenantSession, "before_flush")
def _stamp_client_code(session, flush_context, instances):
    client_code = session.info[TENANT_INFO_KEY]
    for obj in session.new:
        if not isinstance(obj, TenantScopedMixin):
            continue
        if obj.client_code is None:
            obj.client_code = client_code
        elif obj.client_code != client_code:
            raise ValueError(
                f"Refusing to write {type(obj).__name__} for tenant {obj.client_code!r} "
                f"through a session of tenant {client_code!r}"
            )
    for obj in session.dirty:
        if isinstance(obj, TenantScopedMixin) and obj.client_code != client_code:
            raise ValueError(
                f"Refusing to move {type(obj).__name__} to tenant {obj.client_code!r}"
            )


class TenantContext:
    """
    Scoped handle on one tenant database.

    Usage:
        tenant = await resolver.resolve(client_code)
        async with tenant as db:
            customers = (await db.execute(select(Customer))).scalars().all()
    """

    def __init__(self, client_code: str, database_name: str, session: AsyncSession):
        self.client_code = client_code
        self.database_name = database_name
        self.session = session

    async def __aenter__(self) -> AsyncSession:
        return self.session

    async def __aexit__(self, exc_type, exc, tb):
        await self.session.close()


class TenantResolver:
    """
    Resolves client codes to tenant contexts.

    Engines are cached per tenant database and shared (they are pool
    owners); sessions are created fresh for every resolution.
    """

    def __init__(
        self,
        control_session_factory: async_sessionmaker,
        url_template: str,
        auto_create_schema: bool = True,
        engine_options: dict | None = None,
    ):
        self._control_session_factory = control_session_factory
        self._url_template = url_template
        self._auto_create_schema = auto_create_schema
        self._engine_options = engine_options or {}
        self._engines: dict[str, AsyncEngine] = {}
        self._schema_ready: set[str] = set()
        self._schema_locks: dict[str, asyncio.Lock] = {}
        # Guards the engine cache only; schema creation runs under a per-database lock
        self._lock = asyncio.Lock()

    def database_url(self, database_name: str) -> str:
        """Build the connection URL of a tenant database."""
        return self._url_template.format(database=database_name)

    async def get_tenant(self, client_code: str) -> Tenant | None:
        """Look up the active tenant mapping for a client code."""
        async with self._control_session_factory() as db:
            stmt = select(Tenant).where(
                Tenant.client_code == client_code,
                Tenant.is_active.is_(True),
            )
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def resolve(self, client_code: str | None) -> TenantContext:
        """
        Open a tenant-scoped context.

        Raises:
            TenantNotFound: no active tenant is mapped to client_code
        """
        if not client_code:
            raise TenantNotFound(client_code)

        tenant = await self.get_tenant(client_code)
        if tenant is None:
            raise TenantNotFound(client_code)

        engine = await self._engine_for(tenant.database_name)
        session = AsyncSession(
            engine,
            sync_session_class=TenantSession,
            expire_on_commit=False,
            info={TENANT_INFO_KEY: tenant.client_code},
        )
        return TenantContext(tenant.client_code, tenant.database_name, session)

    async def ensure_schema(self, tenant: Tenant) -> None:
        """Create any missing tables in the tenant's database."""
        engine = await self._engine_for(tenant.database_name, create_schema=False)
        async with self._schema_locks.setdefault(tenant.database_name, asyncio.Lock()):
            await self._create_schema(engine)
            self._schema_ready.add(tenant.database_name)
        logger.info(
            "tenant_schema_ready",
            client_code=tenant.client_code,
            database=tenant.database_name,
        )

    async def dispose(self) -> None:
        """Close every cached tenant engine."""
        async with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
            self._schema_ready.clear()
            self._schema_locks.clear()
        for engine in engines:
            await engine.dispose()

    async def _engine_for(self, database_name: str, create_schema: bool | None = None) -> AsyncEngine:
        if create_schema is None:
            create_schema = self._auto_create_schema

        async with self._lock:
            engine = self._engines.get(database_name)
            if engine is None:
                engine = create_async_engine(
                    self.database_url(database_name),
                    pool_pre_ping=True,
                    **self._engine_options,
                )
                self._engines[database_name] = engine
                self._schema_locks[database_name] = asyncio.Lock()
            schema_lock = self._schema_locks[database_name]

        if create_schema and database_name not in self._schema_ready:
            async with schema_lock:
                if database_name not in self._schema_ready:
                    await self._create_schema(engine)
                    self._schema_ready.add(database_name)
                    logger.info("tenant_schema_created", database=database_name)

        return engine

    async def _create_schema(self, engine: AsyncEngine) -> None:
        async with engine.begin() as conn:
            await conn.run_sync(TenantBase.metadata.create_all)
