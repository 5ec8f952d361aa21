"""
Daily Platform Metrics Model

Per-day normalized metrics for one client and platform, written by syncs.
At most one row per (client_id, platform, date); a re-sync of the same day
overwrites it.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Date, JSON, UniqueConstraint
from app.utils.helpers import utcnow

from app.models.base import Base


class DailyPlatformMetric(Base):
    """
    One day of one platform's metrics for a client
    """
    __tablename__ = "daily_platform_metrics"
    __table_args__ = (
        UniqueConstraint('client_id', 'platform', 'date', name='uq_daily_metric_client_platform_date'),
    )

    id = Column(Integer, primary_key=True, index=True)

    client_id = Column(String, index=True, nullable=False)
    platform = Column(String, index=True, nullable=False)
    integration_id = Column(Integer, nullable=True)
    date = Column(Date, index=True, nullable=False)

    kind = Column(String, nullable=False)  # ads, commerce, analytics
    metrics = Column(JSON, nullable=True)

    # Headline figures, copied out of metrics for range queries
    spend = Column(Float, default=0)
    revenue = Column(Float, default=0)
    conversions = Column(Float, default=0)
    sessions = Column(Float, default=0)

    fetched_at = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
