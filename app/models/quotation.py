"""
Quotation models (tenant database).

SECURITY: Rows are tenant scoped, see TenantScopedMixin.
"""
import enum
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import TenantBase, TenantScopedMixin, utcnow


class QuotationStatus(str, enum.Enum):
    """Quotation status enum."""
    DRAFT = "Draft"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


class MakingType(str, enum.Enum):
    """How the making charge of an item is expressed."""
    PER_GRAM = "PerGram"
    PERCENTAGE = "Percentage"
    FIXED = "Fixed"


class Quotation(TenantBase, TenantScopedMixin):
    """Quotation header with computed totals."""
    __tablename__ = "quotations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quotation_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("customers.id"),
        nullable=False,
        index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross_weight: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False, default=Decimal("0"))
    old_metal_weight: Mapped[Decimal | None] = mapped_column(Numeric(18, 3), nullable=True)
    old_metal_rate: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    old_metal_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    payment_mode: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_gst_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    gst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("3.00"))
    gst_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    sub_total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=QuotationStatus.DRAFT.value)
    quotation_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    valid_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    remarks: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_on: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_on: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    customer = relationship("Customer", back_populates="quotations", lazy="selectin")
    items = relationship(
        "QuotationItem",
        back_populates="quotation",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self):
        return f"<Quotation(id={self.id}, number={self.quotation_number}, status={self.status})>"


class QuotationItem(TenantBase, TenantScopedMixin):
    """Line item of a quotation; product details are copied for history."""
    __tablename__ = "quotation_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quotation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    item_code: Mapped[str] = mapped_column(String(50), nullable=False)
    rfid_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    design_name: Mapped[str] = mapped_column(String(100), nullable=False)
    purity: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    gross_weight: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False)
    stone_weight: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False, default=Decimal("0"))
    net_weight: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False)
    gold_rate: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    making: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    making_type: Mapped[str] = mapped_column(String(20), nullable=False, default=MakingType.FIXED.value)
    stone_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    making_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    metal_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    item_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    remarks: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_on: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Relationships
    quotation = relationship("Quotation", back_populates="items")

    def __repr__(self):
        return f"<QuotationItem(id={self.id}, item_code={self.item_code}, amount={self.item_amount})>"
