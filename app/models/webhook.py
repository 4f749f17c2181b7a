"""
Webhook models.

Subscriptions and delivery attempts live in the control-plane database.
SECURITY: All queries MUST include a client_code filter.
"""
import enum
import uuid
from datetime import datetime
from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, utcnow


DEFAULT_MAX_RETRIES = 3


class WebhookEventStatus(str, enum.Enum):
    """Delivery attempt status."""
    PENDING = "Pending"
    DELIVERED = "Delivered"
    FAILED = "Failed"
    RETRYING = "Retrying"


class WebhookSubscription(Base):
    """Tenant subscription of a target URL to an event type pattern."""
    __tablename__ = "webhook_subscriptions"
    __table_args__ = (
        Index("ix_webhook_subscriptions_client_event", "client_code", "event_type"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    client_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # exact name, "*", or "<prefix>.*"
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    webhook_url: Mapped[str] = mapped_column(String(500), nullable=False)
    secret_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_on: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_on: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self):
        return f"<WebhookSubscription(id={self.id}, client={self.client_code}, event={self.event_type})>"


class WebhookEvent(Base):
    """
    One delivery attempt of one triggered event to one target.

    Retries mutate the same row; retry_count never exceeds max_retries.
    """
    __tablename__ = "webhook_events"
    __table_args__ = (
        Index("ix_webhook_events_client_status", "client_code", "status"),
        Index("ix_webhook_events_client_event_created", "client_code", "event_type", "created_on"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    client_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    subscription_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    webhook_url: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=WebhookEventStatus.PENDING.value
    )
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_MAX_RETRIES)
    created_on: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    delivered_on: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    next_retry_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<WebhookEvent(id={self.id}, event={self.event_type}, status={self.status})>"
