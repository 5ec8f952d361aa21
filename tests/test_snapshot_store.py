"""
Snapshot store and cache gate tests.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from app.models.base import SessionLocal
from app.models.snapshot import AnalyticsSnapshot
from app.services.cache_gate import is_fresh, oldest_snapshot, snapshot_age_minutes
from app.services.snapshot_store import Snapshot, SnapshotStore
from app.utils.errors import StorageError

NOW = datetime(2026, 3, 1, 12, 0, 0)


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------

def test_upsert_inserts_then_updates_in_place():
    store = SnapshotStore()
    first = store.upsert("c1", "google_ads", {"raw": {}}, {"kind": "ads", "cost": 10}, now=NOW)
    second = store.upsert("c1", "google_ads", {"raw": {}}, {"kind": "ads", "cost": 20},
                          now=NOW + timedelta(minutes=30))

    assert first.metrics["cost"] == 10
    assert second.metrics["cost"] == 20
    assert second.updated_at == NOW + timedelta(minutes=30)
    assert second.snapshot_date == NOW.date()

    db = SessionLocal()
    try:
        assert db.query(AnalyticsSnapshot).count() == 1
    finally:
        db.close()


def test_concurrent_upserts_on_one_key_leave_one_whole_row():
    store = SnapshotStore()

    def write(n):
        return store.upsert("c1", "google_ads", {"normalized": {"cost": n}, "raw": {"writer": n}},
                            {"kind": "ads", "cost": n}, now=NOW + timedelta(seconds=n))

    with ThreadPoolExecutor(max_workers=8) as pool:
        written = list(pool.map(write, range(24)))

    assert len(written) == 24

    db = SessionLocal()
    try:
        assert db.query(AnalyticsSnapshot).count() == 1
    finally:
        db.close()

    final = store.get("c1", "google_ads")
    writer = final.metrics["cost"]
    assert final.data == {"normalized": {"cost": writer}, "raw": {"writer": writer}}
    assert final.updated_at == NOW + timedelta(seconds=writer)


def test_get_all_filters_by_platform():
    store = SnapshotStore()
    store.upsert("c1", "google_ads", {}, {"kind": "ads"}, now=NOW)
    store.upsert("c1", "shopify", {}, {"kind": "commerce"}, now=NOW)
    store.upsert("c2", "shopify", {}, {"kind": "commerce"}, now=NOW)

    assert [s.platform for s in store.get_all("c1")] == ["google_ads", "shopify"]
    assert [s.platform for s in store.get_all("c1", ["shopify"])] == ["shopify"]
    assert store.get_all("c1", []) == []
    assert store.get("c2", "google_ads") is None


def test_failed_write_leaves_previous_row_untouched():
    store = SnapshotStore()
    store.upsert("c1", "facebook_ads", {"raw": {"v": 1}}, {"kind": "ads", "cost": 50}, now=NOW)

    class FailingSession:
        """Session whose commit always fails"""

        def __init__(self):
            self._db = SessionLocal()

        def __getattr__(self, name):
            return getattr(self._db, name)

        def commit(self):
            from sqlalchemy.exc import OperationalError
            raise OperationalError("UPDATE analytics_snapshots", {}, Exception("disk I/O error"))

    failing = SnapshotStore(session_factory=FailingSession)
    with pytest.raises(StorageError):
        failing.upsert("c1", "facebook_ads", {"raw": {"v": 2}}, {"kind": "ads", "cost": 999},
                       now=NOW + timedelta(hours=1))

    kept = store.get("c1", "facebook_ads")
    assert kept.metrics["cost"] == 50
    assert kept.updated_at == NOW


def test_snapshot_exposes_normalized_metrics():
    snapshot = Snapshot(client_id="c1", platform="shopify",
                        metrics={"kind": "commerce", "revenue": "120.5", "orders": 3})
    assert snapshot.normalized.revenue == 120.5
    assert snapshot.normalized.orders == 3


# ---------------------------------------------------------------------------
# Cache gate
# ---------------------------------------------------------------------------

def _snap(updated_at):
    return Snapshot(client_id="c1", platform="google_ads", updated_at=updated_at)


def test_is_fresh_inside_window_only():
    snap = _snap(NOW)
    assert is_fresh(snap, 15, now=NOW + timedelta(minutes=5))
    assert not is_fresh(snap, 15, now=NOW + timedelta(minutes=15))
    assert not is_fresh(snap, 15, now=NOW + timedelta(hours=2))


def test_is_fresh_is_monotonic_in_elapsed_time():
    snap = _snap(NOW)
    results = [is_fresh(snap, 15, now=NOW + timedelta(minutes=m)) for m in range(0, 40)]
    first_stale = results.index(False)
    assert all(results[:first_stale])
    assert not any(results[first_stale:])


def test_missing_snapshot_is_never_fresh():
    assert not is_fresh(None, 15, now=NOW)
    assert not is_fresh(_snap(None), 15, now=NOW)


def test_oldest_snapshot_and_age():
    old, new = _snap(NOW - timedelta(minutes=40)), _snap(NOW - timedelta(minutes=5))
    assert oldest_snapshot([new, None, old]) is old
    assert oldest_snapshot([]) is None
    assert snapshot_age_minutes(old, now=NOW) == 40
    assert snapshot_age_minutes(None, now=NOW) is None
