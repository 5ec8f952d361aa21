"""
Integration Models

A client's connection record for one platform, the per-platform sync
schedule and the sync run ledger. Connections are owned by the surrounding
CRUD system; the engine only reads them and stamps sync bookkeeping.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Boolean, Text, UniqueConstraint
from app.utils.helpers import utcnow

from app.models.base import Base


class Integration(Base):
    """
    Client credential/connection record for one platform
    """
    __tablename__ = "integrations"

    id = Column(Integer, primary_key=True, index=True)

    client_id = Column(String, index=True, nullable=False)
    platform = Column(String, index=True, nullable=False)  # google_ads, facebook_ads, shopify, ...

    # Connection state
    is_connected = Column(Boolean, default=False, index=True)
    external_account_id = Column(String, nullable=True)
    encrypted_credentials = Column(Text, nullable=True)  # Opaque; never decrypted here
    settings = Column(JSON, nullable=True)

    # Sync bookkeeping
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class SyncSchedule(Base):
    """
    When each client/platform pair was last synced and is next due
    """
    __tablename__ = "sync_schedules"
    __table_args__ = (
        UniqueConstraint('client_id', 'platform', name='uq_sync_schedule_client_platform'),
    )

    id = Column(Integer, primary_key=True, index=True)

    client_id = Column(String, index=True, nullable=False)
    platform = Column(String, index=True, nullable=False)
    frequency = Column(String, default="daily")  # hourly, daily, weekly

    last_sync_at = Column(DateTime, nullable=True)
    next_sync_at = Column(DateTime, nullable=True, index=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class SyncRun(Base):
    """
    Ledger entry for one sync invocation

    Opened as ``running`` before any platform is called and closed with
    success, partial or fail once every selected integration has reported.
    """
    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)

    client_id = Column(String, index=True, nullable=True)  # None when the run spans clients
    selector = Column(String, nullable=True)  # all, integration:<id>, client:<id>, platform:<name>
    date_from = Column(String, nullable=True)
    date_to = Column(String, nullable=True)
    platforms = Column(JSON, nullable=True)

    status = Column(String, index=True, default="running")  # running, success, partial, fail
    integrations_total = Column(Integer, default=0)
    synced = Column(Integer, default=0)
    failed = Column(Integer, default=0)
    rows_upserted = Column(Integer, default=0)
    error_summary = Column(Text, nullable=True)

    started_at = Column(DateTime, default=utcnow, index=True)
    finished_at = Column(DateTime, nullable=True)
