"""
Analytics Snapshot Model

Cached result of one platform fetch for one client.
At most one current row per (client_id, platform); refreshed in place.
"""
from sqlalchemy import Column, Integer, String, DateTime, Date, JSON, UniqueConstraint
from app.utils.helpers import utcnow

from app.models.base import Base


class AnalyticsSnapshot(Base):
    """
    Last known good platform payload for a client
    """
    __tablename__ = "analytics_snapshots"
    __table_args__ = (
        UniqueConstraint('client_id', 'platform', name='uq_analytics_snapshot_client_platform'),
    )

    id = Column(Integer, primary_key=True, index=True)

    client_id = Column(String, index=True, nullable=False)
    platform = Column(String, index=True, nullable=False)

    # Normalized payload + extracted summary metrics
    data = Column(JSON, nullable=True)
    metrics = Column(JSON, nullable=True)

    snapshot_date = Column(Date, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, index=True)
