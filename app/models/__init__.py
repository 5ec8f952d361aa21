"""Database models for the analytics engine"""

from app.models.integration import Integration, SyncSchedule, SyncRun
from app.models.snapshot import AnalyticsSnapshot
from app.models.daily_metrics import DailyPlatformMetric
from app.models.health import ServiceHealthRecord, MonitoringPreference

__all__ = [
    "Integration",
    "SyncSchedule",
    "SyncRun",
    "AnalyticsSnapshot",
    "DailyPlatformMetric",
    "ServiceHealthRecord",
    "MonitoringPreference",
]
