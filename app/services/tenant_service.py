"""
Tenant registry service (control plane).

SECURITY: Only admin routes may call register/deactivate.
"""
import re

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.tenant import Tenant
from app.services.result import ErrorKind, ServiceResult
from app.services.tenant_resolver import TenantResolver

logger = structlog.get_logger()

CLIENT_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,50}$")


def default_database_name(client_code: str) -> str:
    return f"client_{client_code.lower()}"


class TenantService:
    """Service for managing tenant database mappings."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, client_code: str) -> Tenant | None:
        """Get tenant by client code, active or not."""
        stmt = select(Tenant).where(Tenant.client_code == client_code)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active(self) -> list[Tenant]:
        """Get all active tenants ordered by client code."""
        stmt = (
            select(Tenant)
            .where(Tenant.is_active.is_(True))
            .order_by(Tenant.client_code)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def register(
        self,
        client_code: str,
        name: str,
        database_name: str | None = None
    ) -> ServiceResult[Tenant]:
        """
        Register a tenant and the database holding its data.

        Args:
            client_code: Tenant client code (letters, digits, '-' and '_')
            name: Display name
            database_name: Tenant database; defaults to client_<code>

        Returns:
            ServiceResult with the new Tenant, INVALID for a malformed
            client code, CONFLICT if the code or its database is already
            registered
        """
        if not CLIENT_CODE_PATTERN.match(client_code or ""):
            return ServiceResult.failure(
                ErrorKind.INVALID,
                "Client code may only contain letters, digits, '-' and '_' (max 50)"
            )

        if await self.get_by_code(client_code):
            return ServiceResult.failure(
                ErrorKind.CONFLICT,
                f"Tenant {client_code} already exists"
            )

        database_name = database_name or default_database_name(client_code)
        owner = await self.db.scalar(select(Tenant).where(Tenant.database_name == database_name))
        if owner is not None:
            return ServiceResult.failure(
                ErrorKind.CONFLICT,
                f"Database {database_name} is already used by tenant {owner.client_code}"
            )

        tenant = Tenant(
            client_code=client_code,
            name=name,
            database_name=database_name,
            is_active=True,
        )
        self.db.add(tenant)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration
            await self.db.rollback()
            return ServiceResult.failure(
                ErrorKind.CONFLICT,
                f"Tenant {client_code} or database {database_name} already exists"
            )
        await self.db.refresh(tenant)

        logger.info("tenant_registered", client_code=client_code, database=tenant.database_name)
        return ServiceResult.success(tenant)

    async def deactivate(self, client_code: str) -> bool:
        """Deactivate a tenant; resolution fails afterwards."""
        tenant = await self.get_by_code(client_code)
        if not tenant or not tenant.is_active:
            return False

        tenant.is_active = False
        await self.db.commit()

        logger.info("tenant_deactivated", client_code=client_code)
        return True


async def migrate_all_tenants(db: AsyncSession, resolver: TenantResolver) -> int:
    """
    Ensure every active tenant database has the current tables.

    A failing tenant is logged and skipped so one bad database does not
    block the rest of the sweep.

    Returns:
        Number of tenants migrated successfully
    """
    tenants = await TenantService(db).list_active()
    migrated = 0

    for tenant in tenants:
        try:
            await resolver.ensure_schema(tenant)
            migrated += 1
        except Exception as e:
            logger.error(
                "tenant_migration_failed",
                client_code=tenant.client_code,
                database=tenant.database_name,
                error=str(e),
            )

    logger.info("tenant_migration_completed", migrated=migrated, total=len(tenants))
    return migrated
