"""
Tenant model.

Maps a client code to the database that holds the tenant's business data.
"""
from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, TimestampMixin


class Tenant(Base, TimestampMixin):
    """
    Tenant registered in the control plane.

    Each tenant owns an isolated database named by database_name; the
    connection URL is built from TENANT_DATABASE_URL_TEMPLATE.
    """
    __tablename__ = "tenants"

    client_code: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    database_name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Tenant(client_code={self.client_code}, name={self.name}, database={self.database_name})>"
