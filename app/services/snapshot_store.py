"""
Snapshot Store
Durable last-known-good platform payloads, one row per (client, platform)
"""
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.connectors.metrics import NormalizedMetrics, metrics_from_dict
from app.models.base import SessionLocal
from app.models.snapshot import AnalyticsSnapshot
from app.utils.errors import StorageError
from app.utils.helpers import utcnow
from app.utils.logger import log


@dataclass(frozen=True)
class Snapshot:
    """Detached, read-only view of an AnalyticsSnapshot row"""
    client_id: str
    platform: str
    data: Dict[str, Any] = field(default_factory=dict, compare=False)
    metrics: Dict[str, Any] = field(default_factory=dict)
    snapshot_date: Optional[date] = None
    updated_at: Optional[datetime] = None

    @property
    def normalized(self) -> Optional[NormalizedMetrics]:
        return metrics_from_dict(self.metrics)

    @classmethod
    def from_row(cls, row: AnalyticsSnapshot) -> "Snapshot":
        return cls(
            client_id=row.client_id,
            platform=row.platform,
            data=dict(row.data or {}),
            metrics=dict(row.metrics or {}),
            snapshot_date=row.snapshot_date,
            updated_at=row.updated_at,
        )


class SnapshotStore:
    """
    Read and upsert platform snapshots

    Writes to the same (client_id, platform) key are serialized in-process by
    a per-key lock; the unique constraint covers writers in other processes.
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory
        self._locks: Dict[tuple, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, client_id: str, platform: str) -> threading.Lock:
        key = (client_id, platform)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get(self, client_id: str, platform: str) -> Optional[Snapshot]:
        db = self.session_factory()
        try:
            row = db.query(AnalyticsSnapshot).filter(
                AnalyticsSnapshot.client_id == client_id,
                AnalyticsSnapshot.platform == platform
            ).first()
            return Snapshot.from_row(row) if row else None
        except SQLAlchemyError as e:
            log.error(f"Error reading snapshot {client_id}/{platform}: {str(e)}")
            raise StorageError(f"Could not read snapshot for {platform}") from e
        finally:
            db.close()

    def get_all(self, client_id: str, platforms: Optional[Iterable[str]] = None) -> List[Snapshot]:
        """Snapshots for a client, optionally restricted to some platforms"""
        db = self.session_factory()
        try:
            query = db.query(AnalyticsSnapshot).filter(AnalyticsSnapshot.client_id == client_id)
            if platforms is not None:
                wanted = list(platforms)
                if not wanted:
                    return []
                query = query.filter(AnalyticsSnapshot.platform.in_(wanted))
            return [Snapshot.from_row(row) for row in query.order_by(AnalyticsSnapshot.platform).all()]
        except SQLAlchemyError as e:
            log.error(f"Error reading snapshots for client {client_id}: {str(e)}")
            raise StorageError(f"Could not read snapshots for client {client_id}") from e
        finally:
            db.close()

    def upsert(
        self,
        client_id: str,
        platform: str,
        data: Dict[str, Any],
        metrics: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> Snapshot:
        """
        Insert or refresh the snapshot for (client_id, platform)

        Raises:
            StorageError: the write failed; any previous row is left as it was
        """
        with self._lock_for(client_id, platform):
            try:
                return self._write(client_id, platform, data, metrics, now)
            except IntegrityError:
                # Another process inserted the key first; the row exists now
                log.warning(f"Concurrent insert on snapshot {client_id}/{platform}, retrying as update")
                try:
                    return self._write(client_id, platform, data, metrics, now)
                except SQLAlchemyError as e:
                    raise StorageError(f"Could not store snapshot for {platform}: {str(e)}") from e
            except SQLAlchemyError as e:
                raise StorageError(f"Could not store snapshot for {platform}: {str(e)}") from e

    def _write(self, client_id, platform, data, metrics, now) -> Snapshot:
        now = now or utcnow()
        db = self.session_factory()
        try:
            row = db.query(AnalyticsSnapshot).filter(
                AnalyticsSnapshot.client_id == client_id,
                AnalyticsSnapshot.platform == platform
            ).first()

            if row is None:
                row = AnalyticsSnapshot(client_id=client_id, platform=platform, created_at=now)
                db.add(row)

            row.data = data
            row.metrics = metrics
            row.snapshot_date = now.date()
            row.updated_at = now

            db.commit()
            log.info(f"Stored snapshot {client_id}/{platform}")
            return Snapshot.from_row(row)
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"Error storing snapshot {client_id}/{platform}: {str(e)}")
            raise
        finally:
            db.close()
