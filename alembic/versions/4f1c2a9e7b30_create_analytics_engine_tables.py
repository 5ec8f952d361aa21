"""create_analytics_engine_tables

Revision ID: 4f1c2a9e7b30
Revises:
Create Date: 2026-10-19

Integrations, sync schedules, analytics snapshots and the service health
time series with alert opt-ins.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1c2a9e7b30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the engine's tables."""
    op.create_table(
        'integrations',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('client_id', sa.String(), nullable=False, index=True),
        sa.Column('platform', sa.String(), nullable=False, index=True),

        # Connection state
        sa.Column('is_connected', sa.Boolean(), default=False, index=True),
        sa.Column('external_account_id', sa.String(), nullable=True),
        sa.Column('encrypted_credentials', sa.Text(), nullable=True),
        sa.Column('settings', sa.JSON(), nullable=True),

        # Sync bookkeeping
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_error', sa.Text(), nullable=True),

        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )

    op.create_table(
        'sync_schedules',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('client_id', sa.String(), nullable=False, index=True),
        sa.Column('platform', sa.String(), nullable=False, index=True),
        sa.Column('frequency', sa.String(), default='daily'),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('next_sync_at', sa.DateTime(), nullable=True, index=True),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('client_id', 'platform', name='uq_sync_schedule_client_platform'),
    )

    op.create_table(
        'analytics_snapshots',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('client_id', sa.String(), nullable=False, index=True),
        sa.Column('platform', sa.String(), nullable=False, index=True),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('metrics', sa.JSON(), nullable=True),
        sa.Column('snapshot_date', sa.Date(), index=True),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime(), index=True),
        sa.UniqueConstraint('client_id', 'platform', name='uq_analytics_snapshot_client_platform'),
    )

    op.create_table(
        'service_health_history',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('service_name', sa.String(), nullable=False, index=True),
        sa.Column('status', sa.String(), nullable=False, index=True),
        sa.Column('latency_ms', sa.Float(), default=0),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('checked_at', sa.DateTime(), index=True),

        # Alert bookkeeping
        sa.Column('alert_sent', sa.Boolean(), default=False, index=True),
        sa.Column('alert_type', sa.String(), nullable=True),
    )

    op.create_table(
        'monitoring_preferences',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.String(), nullable=False, index=True),
        sa.Column('service_name', sa.String(), nullable=False, index=True),
        sa.Column('notify_on_down', sa.Boolean(), default=True),
        sa.Column('notify_on_recovery', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime()),
    )


def downgrade() -> None:
    """Drop the engine's tables."""
    op.drop_table('monitoring_preferences')
    op.drop_table('service_health_history')
    op.drop_table('analytics_snapshots')
    op.drop_table('sync_schedules')
    op.drop_table('integrations')
