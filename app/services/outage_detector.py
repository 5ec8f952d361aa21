"""
Outage Detector
Turns the health time series into debounced down/recovered transitions
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.connectors.registry import get_service
from app.models.base import SessionLocal
from app.models.health import MonitoringPreference, ServiceHealthRecord
from app.services.health_poller import HEALTHY
from app.utils.errors import StorageError
from app.utils.helpers import minutes_between, utcnow
from app.utils.logger import log

settings = get_settings()

DOWN = "down"
RECOVERED = "recovered"


@dataclass
class AlertTransition:
    """A detected status change for one service, ready to notify on"""
    service_name: str
    display_name: str
    type: str  # down, recovered
    status: str
    previous_status: str
    message: Optional[str] = None
    downtime_minutes: Optional[float] = None
    subscribers: List[str] = field(default_factory=list)  # user ids
    recipients: List[str] = field(default_factory=list)  # email addresses

    def to_dict(self) -> Dict:
        return {
            "service": self.service_name,
            "display_name": self.display_name,
            "type": self.type,
            "status": self.status,
            "previous_status": self.previous_status,
            "message": self.message,
            "downtime_minutes": self.downtime_minutes,
            "subscribers": self.subscribers,
            "recipients": self.recipients,
        }


class OutageDetector:
    """
    Reads service_health_history and decides what to alert on.

    A "down" needs the failure to be sustained: the samples in the last
    ``threshold_minutes`` plus the sample in force when that window opened
    must be at least two and all non-healthy. A "recovered" fires on the
    first healthy sample after a non-healthy run.
    """

    def __init__(
        self,
        session_factory=SessionLocal,
        threshold_minutes: Optional[float] = None,
        cooldown_minutes: Optional[float] = None,
        retention_days: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.threshold_minutes = settings.continuous_failure_minutes if threshold_minutes is None else threshold_minutes
        self.cooldown_minutes = settings.alert_cooldown_minutes if cooldown_minutes is None else cooldown_minutes
        self.retention_days = settings.health_retention_days if retention_days is None else retention_days

    def _history(self, db, service_name: str):
        """Records for a service, newest first"""
        return db.query(ServiceHealthRecord).filter(
            ServiceHealthRecord.service_name == service_name
        ).order_by(ServiceHealthRecord.checked_at.desc(), ServiceHealthRecord.id.desc())

    def evaluate(self, service_name: str, now: Optional[datetime] = None) -> Optional[AlertTransition]:
        """Transition for one service given its history up to now, if any"""
        now = now or utcnow()
        db = self.session_factory()
        try:
            history = self._history(db, service_name).filter(
                ServiceHealthRecord.checked_at <= now
            ).all()
        finally:
            db.close()

        if not history:
            return None

        current = history[0]
        service = get_service(service_name)
        display_name = service.display_name if service else service_name

        # Uninterrupted non-healthy records just before (or including) the current one
        run_from = 1 if current.status == HEALTHY else 0
        run = []
        for record in history[run_from:]:
            if record.status == HEALTHY:
                break
            run.append(record)

        if current.status == HEALTHY:
            if not run:
                return None
            downtime = minutes_between(run[-1].checked_at, now)
            log.info(f"{display_name} is back online after {downtime:.0f} minutes")
            return AlertTransition(
                service_name=service_name,
                display_name=display_name,
                type=RECOVERED,
                status=current.status,
                previous_status=run[0].status,
                downtime_minutes=round(downtime, 1),
            )

        if any(r.alert_sent and r.alert_type == DOWN for r in run):
            return None

        if not self._down_continuously(history, now):
            log.info(f"{display_name} is {current.status} but has not reached {self.threshold_minutes} min threshold yet")
            return None

        previous = history[len(run)] if len(history) > len(run) else None
        log.warning(f"{display_name} has been {current.status} for {self.threshold_minutes}+ minutes")
        return AlertTransition(
            service_name=service_name,
            display_name=display_name,
            type=DOWN,
            status=current.status,
            previous_status=previous.status if previous else HEALTHY,
            message=current.message,
            downtime_minutes=round(minutes_between(run[-1].checked_at, now), 1),
        )

    def _down_continuously(self, history: List[ServiceHealthRecord], now: datetime) -> bool:
        window_start = now - timedelta(minutes=self.threshold_minutes)
        samples = [r for r in history if r.checked_at >= window_start]
        prior = next((r for r in history if r.checked_at < window_start), None)
        if prior is not None:
            samples.append(prior)

        if len(samples) < 2:
            return False
        return all(r.status != HEALTHY for r in samples)

    def detect(self, service_names: Iterable[str], now: Optional[datetime] = None) -> List[AlertTransition]:
        """Candidate transitions across the monitored services"""
        candidates = []
        for name in sorted(service_names):
            transition = self.evaluate(name, now)
            if transition:
                candidates.append(transition)
        return candidates

    def filter_by_preferences(self, candidates: List[AlertTransition]) -> List[AlertTransition]:
        """Keep candidates that at least one user opted into, attaching their ids and emails"""
        if not candidates:
            return []

        db = self.session_factory()
        try:
            prefs = db.query(MonitoringPreference).filter(
                MonitoringPreference.service_name.in_([c.service_name for c in candidates])
            ).all()
        finally:
            db.close()

        kept = []
        for candidate in candidates:
            opted_in = [
                p for p in prefs
                if p.service_name == candidate.service_name
                and (p.notify_on_down if candidate.type == DOWN else p.notify_on_recovery)
            ]
            if opted_in:
                candidate.subscribers = sorted({p.user_id for p in opted_in})
                candidate.recipients = sorted({p.email for p in opted_in if p.email})
                kept.append(candidate)
            else:
                log.info(f"No subscribers for {candidate.type} alert on {candidate.service_name}")
        return kept

    def last_alert_at(self) -> Optional[datetime]:
        """When the most recent alert batch was sent, across all services"""
        db = self.session_factory()
        try:
            record = db.query(ServiceHealthRecord).filter(
                ServiceHealthRecord.alert_sent == True  # noqa: E712
            ).order_by(ServiceHealthRecord.checked_at.desc()).first()
            return record.checked_at if record else None
        finally:
            db.close()

    def cooldown_active(self, now: Optional[datetime] = None) -> bool:
        last = self.last_alert_at()
        if last is None:
            return False
        return (now or utcnow()) - last < timedelta(minutes=self.cooldown_minutes)

    def mark_sent(self, transitions: List[AlertTransition], now: Optional[datetime] = None):
        """Flag each alerted service's latest record with the alert that went out"""
        now = now or utcnow()
        db = self.session_factory()
        try:
            for transition in transitions:
                record = self._history(db, transition.service_name).filter(
                    ServiceHealthRecord.checked_at <= now
                ).first()
                if record is not None:
                    record.alert_sent = True
                    record.alert_type = transition.type
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"Error marking alerts as sent: {str(e)}")
            raise StorageError("Could not mark alerts as sent") from e
        finally:
            db.close()

    def purge(self, now: Optional[datetime] = None) -> int:
        """Delete health records past the retention window"""
        cutoff = (now or utcnow()) - timedelta(days=self.retention_days)
        db = self.session_factory()
        try:
            deleted = db.query(ServiceHealthRecord).filter(
                ServiceHealthRecord.checked_at < cutoff
            ).delete(synchronize_session=False)
            db.commit()
            if deleted:
                log.info(f"Purged {deleted} health records older than {self.retention_days} days")
            return deleted
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"Error cleaning up old health records: {str(e)}")
            return 0
        finally:
            db.close()
