"""
Daily Metrics Store
Per-day platform metrics written by syncs, one row per (client, platform, date)
"""
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from app.connectors import registry
from app.connectors.metrics import AdsMetrics, AnalyticsMetrics, CommerceMetrics, NormalizedMetrics
from app.models.base import SessionLocal
from app.models.daily_metrics import DailyPlatformMetric
from app.utils.errors import StorageError
from app.utils.helpers import parse_date, utcnow
from app.utils.logger import log

# Payload keys under which platform functions return a per-day series
DAILY_SERIES_KEYS = ("daily", "dailyData", "dailySales", "byDate")


def daily_breakdown(
    platform: str,
    metrics: NormalizedMetrics,
    start_date: str,
    end_date: str
) -> List[Tuple[date, NormalizedMetrics]]:
    """
    Split a fetch result into per-day metrics

    Uses the payload's daily series when the function returned one, each
    entry normalized by the platform's adapter. Without a series, a
    single-day window maps onto that day; longer windows have no daily rows.
    """
    start, end = parse_date(start_date), parse_date(end_date)
    series = next(
        (metrics.raw[key] for key in DAILY_SERIES_KEYS if isinstance(metrics.raw.get(key), list)),
        None
    )

    if series is None:
        if start is not None and start == end:
            return [(start, metrics)]
        return []

    adapter = registry.get_adapter(platform)
    days: Dict[date, NormalizedMetrics] = {}
    for entry in series:
        if not isinstance(entry, dict):
            continue
        day = parse_date(entry.get("date"))
        if day is None or (start and day < start) or (end and day > end):
            continue
        days[day] = adapter.normalize(entry)
    return sorted(days.items())


def _headline(metrics: NormalizedMetrics) -> Dict[str, float]:
    if isinstance(metrics, AdsMetrics):
        return {"spend": metrics.cost, "conversions": metrics.conversions}
    if isinstance(metrics, CommerceMetrics):
        return {"revenue": metrics.revenue, "conversions": metrics.orders}
    if isinstance(metrics, AnalyticsMetrics):
        return {"sessions": metrics.sessions}
    return {}


class DailyMetricsStore:
    """Upsert and read per-day platform metrics"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def upsert_days(
        self,
        client_id: str,
        platform: str,
        days: List[Tuple[date, NormalizedMetrics]],
        integration_id: Optional[int] = None
    ) -> int:
        """
        Insert or overwrite one row per day

        Returns:
            Number of rows written

        Raises:
            StorageError: the write failed; no day of this batch is kept
        """
        if not days:
            return 0

        now = utcnow()
        db = self.session_factory()
        try:
            existing = {
                row.date: row for row in db.query(DailyPlatformMetric).filter(
                    DailyPlatformMetric.client_id == client_id,
                    DailyPlatformMetric.platform == platform,
                    DailyPlatformMetric.date.in_([day for day, _ in days])
                ).all()
            }

            for day, metrics in days:
                row = existing.get(day)
                if row is None:
                    row = DailyPlatformMetric(client_id=client_id, platform=platform, date=day, created_at=now)
                    db.add(row)

                row.integration_id = integration_id if integration_id is not None else row.integration_id
                row.kind = metrics.kind
                row.metrics = metrics.to_dict()
                row.spend = 0.0
                row.revenue = 0.0
                row.conversions = 0.0
                row.sessions = 0.0
                for column, value in _headline(metrics).items():
                    setattr(row, column, value)
                row.fetched_at = now
                row.updated_at = now

            db.commit()
            log.info(f"Stored {len(days)} daily rows for {client_id}/{platform}")
            return len(days)
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"Error storing daily metrics {client_id}/{platform}: {str(e)}")
            raise StorageError(f"Could not store daily metrics for {platform}: {str(e)}") from e
        finally:
            db.close()

    def get_range(
        self,
        client_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        platform: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Daily rows for a client, oldest first"""
        db = self.session_factory()
        try:
            query = db.query(DailyPlatformMetric).filter(DailyPlatformMetric.client_id == client_id)
            if platform:
                query = query.filter(DailyPlatformMetric.platform == platform)
            start, end = parse_date(start_date), parse_date(end_date)
            if start:
                query = query.filter(DailyPlatformMetric.date >= start)
            if end:
                query = query.filter(DailyPlatformMetric.date <= end)

            return [
                {
                    "date": row.date.isoformat(),
                    "platform": row.platform,
                    "kind": row.kind,
                    "spend": row.spend,
                    "revenue": row.revenue,
                    "conversions": row.conversions,
                    "sessions": row.sessions,
                    "metrics": row.metrics or {},
                }
                for row in query.order_by(DailyPlatformMetric.date, DailyPlatformMetric.platform).all()
            ]
        except SQLAlchemyError as e:
            log.error(f"Error reading daily metrics for client {client_id}: {str(e)}")
            raise StorageError(f"Could not read daily metrics for client {client_id}") from e
        finally:
            db.close()
