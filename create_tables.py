"""
Script to create the control-plane tables and register a tenant.

Creates the tenants and webhook tables, then optionally registers a
tenant and creates its database schema.
Run this after starting PostgreSQL with Docker.

Usage:
    python create_tables.py
    python create_tables.py DEMO01 "Demo Jewellers"
"""
import asyncio
import sys
from app.config import settings
from app.database import AsyncSessionLocal, engine
from app.models.base import Base
from app.models import tenant, webhook  # noqa: F401  registers control-plane tables
from app.services.tenant_resolver import TenantResolver
from app.services.tenant_service import TenantService, migrate_all_tenants


async def create_all_tables():
    """Create all control-plane tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Control-plane tables created successfully!")


async def drop_all_tables():
    """Drop all control-plane tables (for testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    print("All tables dropped!")


async def register_tenant(client_code: str, name: str):
    """Register a tenant unless it exists."""
    async with AsyncSessionLocal() as db:
        result = await TenantService(db).register(client_code, name)
        if result.ok:
            print(f"Registered tenant {client_code} -> {result.value.database_name}")
        else:
            print(f"Skipped tenant {client_code}: {result.message}")


async def main(args: list[str]):
    """Main entry point."""
    print("Creating database tables...")
    await create_all_tables()

    if len(args) >= 2:
        await register_tenant(args[0], args[1])

    resolver = TenantResolver(AsyncSessionLocal, settings.TENANT_DATABASE_URL_TEMPLATE)
    async with AsyncSessionLocal() as db:
        migrated = await migrate_all_tenants(db, resolver)
    await resolver.dispose()
    await engine.dispose()
    print(f"Tenant schemas ready: {migrated}")
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
