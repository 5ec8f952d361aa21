"""add_daily_metrics_and_sync_runs

Revision ID: 9b2d7e41c5a8
Revises: 4f1c2a9e7b30
Create Date: 2026-10-20

Per-day platform metrics written by syncs, the sync run ledger, and an
email address on alert opt-ins.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9b2d7e41c5a8'
down_revision: Union[str, Sequence[str], None] = '4f1c2a9e7b30'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'daily_platform_metrics',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('client_id', sa.String(), nullable=False, index=True),
        sa.Column('platform', sa.String(), nullable=False, index=True),
        sa.Column('integration_id', sa.Integer(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False, index=True),
        sa.Column('kind', sa.String(), nullable=False),
        sa.Column('metrics', sa.JSON(), nullable=True),
        sa.Column('spend', sa.Float(), default=0),
        sa.Column('revenue', sa.Float(), default=0),
        sa.Column('conversions', sa.Float(), default=0),
        sa.Column('sessions', sa.Float(), default=0),
        sa.Column('fetched_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('client_id', 'platform', 'date', name='uq_daily_metric_client_platform_date'),
    )

    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('client_id', sa.String(), nullable=True, index=True),
        sa.Column('selector', sa.String(), nullable=True),
        sa.Column('date_from', sa.String(), nullable=True),
        sa.Column('date_to', sa.String(), nullable=True),
        sa.Column('platforms', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), index=True, default='running'),
        sa.Column('integrations_total', sa.Integer(), default=0),
        sa.Column('synced', sa.Integer(), default=0),
        sa.Column('failed', sa.Integer(), default=0),
        sa.Column('rows_upserted', sa.Integer(), default=0),
        sa.Column('error_summary', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), index=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
    )

    op.add_column('monitoring_preferences', sa.Column('email', sa.String(), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_column('monitoring_preferences', 'email')
    op.drop_table('sync_runs')
    op.drop_table('daily_platform_metrics')
