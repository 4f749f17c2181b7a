"""
Control-plane database engine and session factory.

Tenant databases are not opened here, see app.services.tenant_resolver.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db():
    """FastAPI dependency yielding a control-plane session per request."""
    async with AsyncSessionLocal() as session:
        yield session
