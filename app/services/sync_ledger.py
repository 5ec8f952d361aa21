"""
Sync Ledger
Records each sync invocation in sync_runs with its outcome and counts
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.models.base import SessionLocal
from app.models.integration import SyncRun
from app.utils.helpers import utcnow
from app.utils.logger import log

RUNNING = "running"
SUCCESS = "success"
PARTIAL = "partial"
FAIL = "fail"


def run_status(results: List[Dict[str, Any]]) -> str:
    """success when nothing failed, fail when everything failed, partial otherwise"""
    failed = [r for r in results if r.get("status") == "error"]
    if not failed:
        return SUCCESS
    if len(failed) == len(results):
        return FAIL
    return PARTIAL


class SyncLedger:
    """
    Opens and closes sync_runs rows

    Ledger writes never abort a sync: failures are logged and the run
    carries on without a ledger id.
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def open(
        self,
        selector: Optional[str],
        date_from: str,
        date_to: str,
        client_id: Optional[str] = None,
        platforms: Optional[List[str]] = None
    ) -> Optional[int]:
        db = self.session_factory()
        try:
            run = SyncRun(
                client_id=client_id,
                selector=selector,
                date_from=date_from,
                date_to=date_to,
                platforms=platforms,
                status=RUNNING,
                started_at=utcnow(),
            )
            db.add(run)
            db.commit()
            return run.id
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"Failed to create sync run: {str(e)}")
            return None
        finally:
            db.close()

    def close(
        self,
        run_id: Optional[int],
        results: List[Dict[str, Any]],
        error: Optional[str] = None
    ) -> str:
        """
        Stamp the run's outcome

        Returns:
            The run status; ``fail`` whenever ``error`` is given
        """
        status = FAIL if error else run_status(results)
        if run_id is None:
            return status

        failures = [r for r in results if r.get("status") == "error"]
        summary = error or "; ".join(f"{r.get('platform')}: {r.get('error')}" for r in failures) or None

        db = self.session_factory()
        try:
            run = db.query(SyncRun).filter(SyncRun.id == run_id).first()
            if run is None:
                log.warning(f"Sync run {run_id} disappeared before it was closed")
                return status
            run.status = status
            run.integrations_total = len(results)
            run.synced = len(results) - len(failures)
            run.failed = len(failures)
            run.rows_upserted = sum(r.get("rows_upserted", 0) for r in results)
            run.error_summary = summary
            run.finished_at = utcnow()
            db.commit()
            log.info(f"Sync run {run_id} finished: {status}, {run.rows_upserted} daily rows")
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"Failed to close sync run {run_id}: {str(e)}")
        finally:
            db.close()
        return status

    def recent(self, limit: int = 20, client_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Latest runs, newest first"""
        db = self.session_factory()
        try:
            query = db.query(SyncRun)
            if client_id:
                query = query.filter(SyncRun.client_id == client_id)
            runs = query.order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(limit).all()
            return [
                {
                    "id": run.id,
                    "client_id": run.client_id,
                    "selector": run.selector,
                    "date_from": run.date_from,
                    "date_to": run.date_to,
                    "status": run.status,
                    "integrations_total": run.integrations_total,
                    "synced": run.synced,
                    "failed": run.failed,
                    "rows_upserted": run.rows_upserted,
                    "error_summary": run.error_summary,
                    "started_at": run.started_at.isoformat() if run.started_at else None,
                    "finished_at": run.finished_at.isoformat() if run.finished_at else None,
                }
                for run in runs
            ]
        finally:
            db.close()
