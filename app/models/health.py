"""
Service Health Models

Append-only health time series for monitored functions, and the per-user
alert opt-ins read by the outage alerter.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, Text
from app.utils.helpers import utcnow

from app.models.base import Base


class ServiceHealthRecord(Base):
    """
    One observation of one monitored service

    Insertion order defines recency; the current status of a service is the
    status of its most recent record.
    """
    __tablename__ = "service_health_history"

    id = Column(Integer, primary_key=True, index=True)

    service_name = Column(String, index=True, nullable=False)
    status = Column(String, index=True, nullable=False)  # healthy, degraded, unhealthy
    latency_ms = Column(Float, default=0)
    message = Column(Text, nullable=True)

    checked_at = Column(DateTime, default=utcnow, index=True)

    # Alert bookkeeping
    alert_sent = Column(Boolean, default=False, index=True)
    alert_type = Column(String, nullable=True)  # down, recovered


class MonitoringPreference(Base):
    """
    Per-user opt-in for alerts on one service
    """
    __tablename__ = "monitoring_preferences"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(String, index=True, nullable=False)
    email = Column(String, nullable=True)  # Where this user's alerts are delivered
    service_name = Column(String, index=True, nullable=False)
    notify_on_down = Column(Boolean, default=True)
    notify_on_recovery = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)
