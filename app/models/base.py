"""
Base model classes for the RFID inventory API.

Two declarative roots keep the metadata of the two databases separate:
- Base: control-plane tables (tenants, webhook subscriptions, webhook events)
- TenantBase: data-plane tables that live in each tenant's own database
"""
from datetime import datetime, timezone
from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all control-plane models."""
    pass


class TenantBase(DeclarativeBase):
    """Base class for models stored in a tenant database."""
    pass


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at timestamps to models.

    Uses server-side defaults for automatic timestamp management.
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class TenantScopedMixin:
    """
    Mixin for rows owned by a tenant.

    SECURITY: Sessions handed out by the tenant resolver add a
    `client_code == <tenant>` criteria to every SELECT on these models
    and stamp the client code on every new row.
    """
    client_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
