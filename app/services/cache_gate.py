"""
Freshness checks for cached snapshots
"""
from datetime import datetime, timedelta
from typing import Iterable, Optional

from app.utils.helpers import minutes_between, utcnow


def snapshot_age_minutes(snapshot, now: Optional[datetime] = None) -> Optional[float]:
    """Minutes since the snapshot was last written, None without a timestamp"""
    if snapshot is None or snapshot.updated_at is None:
        return None
    return max(0.0, minutes_between(snapshot.updated_at, now or utcnow()))


def is_fresh(snapshot, freshness_window_minutes: float, now: Optional[datetime] = None) -> bool:
    """
    True when the snapshot was written less than the window ago.

    Once False for a snapshot it stays False until the snapshot is rewritten.
    """
    if snapshot is None or snapshot.updated_at is None:
        return False
    return (now or utcnow()) - snapshot.updated_at < timedelta(minutes=freshness_window_minutes)


def oldest_snapshot(snapshots: Iterable):
    """Snapshot with the earliest updated_at, or None"""
    dated = [s for s in snapshots if s is not None and s.updated_at is not None]
    if not dated:
        return None
    return min(dated, key=lambda s: s.updated_at)
