"""initial control-plane schema - tenants and webhooks

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Tenant databases are not managed here; their tables are created by the
tenant migration sweep.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create tenants table
    op.create_table(
        'tenants',
        sa.Column('client_code', sa.String(50), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('database_name', sa.String(128), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )

    # Create webhook_subscriptions table
    op.create_table(
        'webhook_subscriptions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_code', sa.String(50), nullable=False, index=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('webhook_url', sa.String(500), nullable=False),
        sa.Column('secret_key', sa.String(500), nullable=True),
        sa.Column('description', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_on', sa.DateTime(), nullable=False),
        sa.Column('updated_on', sa.DateTime(), nullable=True),
    )
    op.create_index(
        'ix_webhook_subscriptions_client_event',
        'webhook_subscriptions',
        ['client_code', 'event_type'],
    )

    # Create webhook_events table (status as VARCHAR)
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_code', sa.String(50), nullable=False, index=True),
        sa.Column('subscription_id', sa.String(36), nullable=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('webhook_url', sa.String(500), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('response_status_code', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.String(1000), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('created_on', sa.DateTime(), nullable=False),
        sa.Column('delivered_on', sa.DateTime(), nullable=True),
        sa.Column('next_retry_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index(
        'ix_webhook_events_client_status',
        'webhook_events',
        ['client_code', 'status'],
    )
    op.create_index(
        'ix_webhook_events_client_event_created',
        'webhook_events',
        ['client_code', 'event_type', 'created_on'],
    )


def downgrade() -> None:
    op.drop_index('ix_webhook_events_client_event_created', table_name='webhook_events')
    op.drop_index('ix_webhook_events_client_status', table_name='webhook_events')
    op.drop_table('webhook_events')
    op.drop_index('ix_webhook_subscriptions_client_event', table_name='webhook_subscriptions')
    op.drop_table('webhook_subscriptions')
    op.drop_table('tenants')
