"""
Analytics Aggregator
Fans out to every connected platform, keeps snapshots current and rolls
them up into one client overview
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.connectors import registry
from app.connectors.metrics import (
    AdsMetrics,
    AnalyticsMetrics,
    CommerceMetrics,
    FetchError,
    FetchResult,
    Platform,
)
from app.models.base import SessionLocal
from app.models.integration import Integration, SyncSchedule
from app.services.cache_gate import is_fresh, oldest_snapshot, snapshot_age_minutes
from app.services.daily_metrics import DailyMetricsStore, daily_breakdown
from app.services.snapshot_store import Snapshot, SnapshotStore
from app.services.sync_ledger import SyncLedger
from app.utils.errors import NoUsableDataError, StorageError
from app.utils.helpers import calculate_date_range, chunk_list, safe_divide, utcnow
from app.utils.logger import log

settings = get_settings()

Fetcher = Callable[[str, str, str, str], Awaitable[FetchResult]]

KNOWN_PLATFORMS = frozenset(p.value for p in Platform)

SYNC_INTERVALS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
}


@dataclass
class PlatformEntry:
    """One connected platform's line in the overview"""
    platform: str
    connected: bool = True
    last_sync: Optional[datetime] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    stale: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "connected": self.connected,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "metrics": self.metrics,
            "stale": self.stale,
            "error": self.error,
        }


@dataclass
class Overview:
    """Cross-platform rollup for one client"""
    total_revenue: float = 0.0
    total_ad_spend: float = 0.0
    total_orders: float = 0.0
    total_conversions: float = 0.0
    total_sessions: float = 0.0
    roi: float = 0.0
    roas_breakdown: Dict[str, float] = field(default_factory=dict)
    platforms: List[PlatformEntry] = field(default_factory=list)
    represented_platforms: List[str] = field(default_factory=list)
    stale_platforms: List[str] = field(default_factory=list)
    missing_platforms: List[str] = field(default_factory=list)
    cache_age_minutes: float = 0.0
    cached: bool = False
    partial: bool = False
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "total_revenue": round(self.total_revenue, 2),
                "total_ad_spend": round(self.total_ad_spend, 2),
                "total_orders": self.total_orders,
                "total_conversions": self.total_conversions,
                "total_sessions": self.total_sessions,
                "roi": round(self.roi, 2),
                "roas_breakdown": {k: round(v, 2) for k, v in self.roas_breakdown.items()},
            },
            "platforms": [p.to_dict() for p in self.platforms],
            "represented_platforms": self.represented_platforms,
            "stale_platforms": self.stale_platforms,
            "missing_platforms": self.missing_platforms,
            "cache_age_minutes": round(self.cache_age_minutes, 1),
            "cached": self.cached,
            "partial": self.partial,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


def build_overview(
    connected: List[str],
    snapshots: Dict[str, Snapshot],
    errors: Optional[Dict[str, str]] = None,
    cached: bool = False,
    now: Optional[datetime] = None
) -> Overview:
    """
    Sum the connected platforms' snapshot metrics into an Overview

    Args:
        connected: Connected platform ids, in display order
        snapshots: Latest snapshot per platform (missing platforms absent)
        errors: Fetch/storage error per platform from this request
        cached: Whether the rollup was served without refreshing
        now: Clock override

    Returns:
        Overview; ratios are 0 whenever spend is 0
    """
    errors = errors or {}
    now = now or utcnow()
    overview = Overview(cached=cached, last_updated=now)

    contributing = []
    for platform in connected:
        snapshot = snapshots.get(platform)
        entry = PlatformEntry(platform=platform, error=errors.get(platform))

        if snapshot is None:
            overview.missing_platforms.append(platform)
            overview.platforms.append(entry)
            continue

        contributing.append(snapshot)
        overview.represented_platforms.append(platform)
        entry.last_sync = snapshot.updated_at
        entry.metrics = dict(snapshot.metrics)
        if platform in errors:
            entry.stale = True
            overview.stale_platforms.append(platform)
        overview.platforms.append(entry)

        metrics = snapshot.normalized
        if isinstance(metrics, AdsMetrics):
            overview.total_ad_spend += metrics.cost
            overview.total_conversions += metrics.conversions
            overview.roas_breakdown[platform] = safe_divide(metrics.conversion_value, metrics.cost)
        elif isinstance(metrics, CommerceMetrics):
            overview.total_revenue += metrics.revenue
            overview.total_orders += metrics.orders
        elif isinstance(metrics, AnalyticsMetrics):
            overview.total_sessions += metrics.sessions

    overview.roi = safe_divide(
        overview.total_revenue - overview.total_ad_spend, overview.total_ad_spend
    ) * 100

    oldest = oldest_snapshot(contributing)
    overview.cache_age_minutes = snapshot_age_minutes(oldest, now) or 0.0
    overview.partial = bool(overview.stale_platforms or overview.missing_platforms)
    return overview


class AnalyticsAggregator:
    """
    Client-facing analytics reads and syncs

    Every platform call goes through ``fetcher`` and comes back as metrics or
    a FetchError value, so one failing platform never aborts the others.
    """

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        fetcher: Optional[Fetcher] = None,
        session_factory=SessionLocal,
        freshness_minutes: Optional[float] = None,
        daily_store: Optional[DailyMetricsStore] = None,
        ledger: Optional[SyncLedger] = None
    ):
        self.session_factory = session_factory
        self.store = store or SnapshotStore(session_factory)
        self.daily_store = daily_store or DailyMetricsStore(session_factory)
        self.ledger = ledger or SyncLedger(session_factory)
        self.fetcher = fetcher or registry.fetch
        self.freshness_minutes = settings.cache_freshness_minutes if freshness_minutes is None else freshness_minutes

    # ------------------------------------------------------------------
    # Integrations
    # ------------------------------------------------------------------

    def connected_platforms(self, client_id: str) -> List[str]:
        """Known platforms with a connected integration for this client"""
        db = self.session_factory()
        try:
            rows = db.query(Integration.platform).filter(
                Integration.client_id == client_id,
                Integration.is_connected == True  # noqa: E712
            ).order_by(Integration.id).all()
        finally:
            db.close()

        platforms = []
        for (platform,) in rows:
            if platform not in KNOWN_PLATFORMS:
                log.warning(f"Ignoring integration with unknown platform {platform} for client {client_id}")
                continue
            if platform not in platforms:
                platforms.append(platform)
        return platforms

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def _fetch_all(
        self, client_id: str, platforms: List[str], start_date: str, end_date: str
    ) -> Dict[str, FetchResult]:
        results = await asyncio.gather(
            *(self.fetcher(client_id, p, start_date, end_date) for p in platforms),
            return_exceptions=True
        )

        settled = {}
        for platform, result in zip(platforms, results):
            if isinstance(result, BaseException):
                log.error(f"Unexpected error fetching {platform} for client {client_id}: {str(result)}")
                result = FetchError(platform=platform, message=str(result) or type(result).__name__)
            settled[platform] = result
        return settled

    def _store_result(self, client_id: str, platform: str, metrics) -> Optional[str]:
        """Upsert a successful fetch; returns an error message if the write failed"""
        try:
            self.store.upsert(
                client_id,
                platform,
                data={"normalized": metrics.to_dict(), "raw": metrics.raw},
                metrics=metrics.to_dict(),
            )
            return None
        except StorageError as e:
            log.error(f"Snapshot write failed for {client_id}/{platform}: {e.message}")
            return e.message

    # ------------------------------------------------------------------
    # Overview
    # ------------------------------------------------------------------

    async def overview(
        self,
        client_id: str,
        start_date: str,
        end_date: str,
        force_refresh: bool = False
    ) -> Overview:
        """
        Cross-platform overview for a client

        Raises:
            NoUsableDataError: every connected platform failed and none has a snapshot
        """
        connected = self.connected_platforms(client_id)

        if not force_refresh and connected:
            snapshots = {s.platform: s for s in self.store.get_all(client_id, connected)}
            if len(snapshots) == len(connected) and is_fresh(
                oldest_snapshot(snapshots.values()), self.freshness_minutes
            ):
                log.info(f"Returning cached overview for client {client_id}")
                return build_overview(connected, snapshots, cached=True)

        if not connected:
            log.info(f"Client {client_id} has no connected platforms")
            return build_overview([], {})

        log.info(f"Refreshing overview for client {client_id} across {len(connected)} platforms")
        results = await self._fetch_all(client_id, connected, start_date, end_date)

        errors = {}
        for platform, result in results.items():
            if isinstance(result, FetchError):
                errors[platform] = result.message
                continue
            storage_error = self._store_result(client_id, platform, result)
            if storage_error:
                errors[platform] = storage_error

        snapshots = {s.platform: s for s in self.store.get_all(client_id, connected)}

        if not snapshots and len(errors) == len(connected):
            raise NoUsableDataError(
                f"All {len(connected)} platforms failed for client {client_id} and no cached data exists"
            )

        overview = build_overview(connected, snapshots, errors)
        if overview.partial:
            log.warning(
                f"Partial overview for client {client_id}: stale={overview.stale_platforms} "
                f"missing={overview.missing_platforms}"
            )
        return overview

    # ------------------------------------------------------------------
    # Single platform
    # ------------------------------------------------------------------

    async def platform(
        self,
        client_id: str,
        platform: str,
        start_date: str,
        end_date: str,
        force_refresh: bool = False
    ) -> Dict[str, Any]:
        """
        One platform's metrics, served from the snapshot while fresh

        Raises:
            AdapterFetchError: the fetch failed and no snapshot exists to fall back on
        """
        platform = Platform.parse(platform).value

        snapshot = self.store.get(client_id, platform)
        if not force_refresh and is_fresh(snapshot, self.freshness_minutes):
            log.info(f"Returning cached {platform} data for client {client_id}")
            return self._platform_response(snapshot, cached=True)

        result = (await self._fetch_all(client_id, [platform], start_date, end_date))[platform]

        if isinstance(result, FetchError):
            if snapshot is None:
                raise result.to_exception()
            log.warning(f"Serving stale {platform} snapshot for client {client_id}")
            return self._platform_response(snapshot, cached=True, stale=True, error=result.message)

        storage_error = self._store_result(client_id, platform, result)
        now = utcnow()
        return {
            "platform": platform,
            "metrics": result.to_dict(),
            "data": result.raw,
            "cached": False,
            "cache_age": 0,
            "stale": False,
            "error": storage_error,
            "last_updated": now.isoformat(),
        }

    @staticmethod
    def _platform_response(snapshot: Snapshot, cached: bool, stale: bool = False, error: Optional[str] = None):
        age = snapshot_age_minutes(snapshot) or 0.0
        return {
            "platform": snapshot.platform,
            "metrics": snapshot.metrics,
            "data": snapshot.data.get("raw", {}),
            "cached": cached,
            "cache_age": round(age),
            "stale": stale,
            "error": error,
            "last_updated": snapshot.updated_at.isoformat() if snapshot.updated_at else None,
        }

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync(self, client_id: str, start_date: str, end_date: str) -> Dict[str, Any]:
        """Refresh every connected platform for a client, snapshot and daily rows"""
        connected = self.connected_platforms(client_id)
        run_id = self.ledger.open(f"client:{client_id}", start_date, end_date,
                                  client_id=client_id, platforms=connected)

        rows = []
        try:
            results = await self._fetch_all(client_id, connected, start_date, end_date)
            for platform, result in results.items():
                row = {"platform": platform}
                row.update(self._apply_sync_result(client_id, platform, result, start_date, end_date))
                rows.append(row)
        except Exception as e:
            self.ledger.close(run_id, rows, error=str(e) or type(e).__name__)
            raise

        status = self.ledger.close(run_id, rows)
        synced = sum(1 for r in rows if r["status"] == "success")
        log.info(f"Sync for client {client_id}: {synced} synced, {len(rows) - synced} failed")
        return {
            "synced": synced,
            "failed": len(rows) - synced,
            "status": status,
            "sync_run_id": run_id,
            "rows_upserted": sum(r["rows_upserted"] for r in rows),
            "results": rows,
            "timestamp": utcnow().isoformat(),
        }

    def _apply_sync_result(
        self,
        client_id: str,
        platform: str,
        result: FetchResult,
        start_date: str,
        end_date: str,
        integration_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Store one platform's sync fetch (snapshot, then daily rows) and stamp bookkeeping"""
        rows_upserted = 0
        if isinstance(result, FetchError):
            error = result.message
        else:
            error = self._store_result(client_id, platform, result)
            if error is None:
                try:
                    rows_upserted = self.daily_store.upsert_days(
                        client_id, platform, daily_breakdown(platform, result, start_date, end_date),
                        integration_id=integration_id
                    )
                except StorageError as e:
                    error = e.message
        self._record_sync(client_id, platform, error)

        outcome = {"status": "error" if error else "success", "rows_upserted": rows_upserted}
        if error:
            outcome["error"] = error
        return outcome

    def _record_sync(self, client_id: str, platform: str, error: Optional[str]):
        """Stamp integration and schedule bookkeeping after a sync attempt"""
        now = utcnow()
        db = self.session_factory()
        try:
            integrations = db.query(Integration).filter(
                Integration.client_id == client_id,
                Integration.platform == platform
            ).all()
            for integration in integrations:
                integration.last_sync_error = error
                if error is None:
                    integration.last_sync_at = now

            if error is None:
                schedule = db.query(SyncSchedule).filter(
                    SyncSchedule.client_id == client_id,
                    SyncSchedule.platform == platform
                ).first()
                if schedule is None:
                    schedule = SyncSchedule(
                        client_id=client_id,
                        platform=platform,
                        frequency=settings.sync_default_frequency
                    )
                    db.add(schedule)
                interval = SYNC_INTERVALS.get(schedule.frequency or "daily", SYNC_INTERVALS["daily"])
                schedule.last_sync_at = now
                schedule.next_sync_at = now + interval
                schedule.is_active = True
                schedule.updated_at = now

            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"Error recording sync for {client_id}/{platform}: {str(e)}")
        finally:
            db.close()

    async def sync_integrations(
        self,
        sync_all: bool = False,
        integration_id: Optional[int] = None,
        client_id: Optional[str] = None,
        platform: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Sync a selection of integrations in small concurrent batches

        The first selector given wins: sync_all, integration_id, client_id,
        platform. With no selector nothing is synced.

        Each invocation is recorded as one sync_runs row, and every synced
        integration also writes its per-day rows to daily_platform_metrics.
        """
        if start_date is None or end_date is None:
            default_start, default_end = calculate_date_range(settings.default_date_range_days)
            start_date = start_date or default_start
            end_date = end_date or default_end

        batch_size = batch_size or settings.sync_batch_size
        batch_delay = settings.sync_batch_delay_seconds if batch_delay is None else batch_delay

        targets = self._select_integrations(sync_all, integration_id, client_id, platform)
        log.info(f"Found {len(targets)} integrations to sync")

        run_id = self.ledger.open(
            self._describe_selector(sync_all, integration_id, client_id, platform),
            start_date,
            end_date,
            client_id=client_id if not sync_all and integration_id is None else None,
            platforms=sorted({p for _, p, _ in targets}),
        )

        results = []
        try:
            batches = chunk_list(targets, batch_size)
            for index, batch in enumerate(batches):
                results.extend(await asyncio.gather(
                    *(self._sync_one(i, p, c, start_date, end_date) for i, p, c in batch)
                ))
                if index < len(batches) - 1:
                    await asyncio.sleep(batch_delay)
        except Exception as e:
            self.ledger.close(run_id, results, error=str(e) or type(e).__name__)
            raise

        status = self.ledger.close(run_id, results)
        log.info(f"Completed sync of {len(results)} integrations: {status}")
        return {
            "success": True,
            "status": status,
            "sync_run_id": run_id,
            "synced": sum(1 for r in results if r["status"] == "success"),
            "failed": sum(1 for r in results if r["status"] == "error"),
            "rows_upserted": sum(r.get("rows_upserted", 0) for r in results),
            "results": results,
            "timestamp": utcnow().isoformat(),
        }

    @staticmethod
    def _describe_selector(sync_all, integration_id, client_id, platform) -> Optional[str]:
        if sync_all:
            return "all"
        if integration_id is not None:
            return f"integration:{integration_id}"
        if client_id:
            return f"client:{client_id}"
        if platform:
            return f"platform:{platform}"
        return None

    def _select_integrations(self, sync_all, integration_id, client_id, platform):
        db = self.session_factory()
        try:
            query = db.query(Integration)
            if sync_all:
                query = query.filter(Integration.is_connected == True)  # noqa: E712
            elif integration_id is not None:
                query = query.filter(Integration.id == integration_id)
            elif client_id:
                query = query.filter(Integration.client_id == client_id, Integration.is_connected == True)  # noqa: E712
            elif platform:
                platform = Platform.parse(platform).value
                query = query.filter(Integration.platform == platform, Integration.is_connected == True)  # noqa: E712
            else:
                return []
            return [(row.id, row.platform, row.client_id) for row in query.order_by(Integration.id).all()]
        finally:
            db.close()

    async def _sync_one(self, integration_id, platform, client_id, start_date, end_date) -> Dict[str, Any]:
        log.info(f"Processing integration {integration_id} ({platform})")
        if platform not in KNOWN_PLATFORMS:
            return {"integration_id": integration_id, "platform": platform, "rows_upserted": 0,
                    "status": "error", "error": f"Unknown platform: {platform}"}

        result = (await self._fetch_all(client_id, [platform], start_date, end_date))[platform]
        row = {"integration_id": integration_id, "client_id": client_id, "platform": platform}
        row.update(self._apply_sync_result(
            client_id, platform, result, start_date, end_date, integration_id=integration_id
        ))
        return row
