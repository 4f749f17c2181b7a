"""
Customer model (tenant database).

SECURITY: Rows are tenant scoped, see TenantScopedMixin.
"""
from datetime import datetime
from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import TenantBase, TenantScopedMixin, utcnow


class Customer(TenantBase, TenantScopedMixin):
    """Customer of a jewelry store, referenced by quotations."""
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_name: Mapped[str] = mapped_column(String(150), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    mobile_number: Mapped[str | None] = mapped_column(String(15), nullable=True)
    alternate_phone: Mapped[str | None] = mapped_column(String(15), nullable=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    pin_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_type: Mapped[str | None] = mapped_column(String(50), nullable=True)  # Individual, Business
    company_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    gst_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_on: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_on: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    quotations = relationship("Quotation", back_populates="customer")

    def __repr__(self):
        return f"<Customer(id={self.id}, name={self.customer_name}, email={self.email})>"
