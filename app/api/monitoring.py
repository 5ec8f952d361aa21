"""
Service health monitoring endpoints
"""
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func

from app.models.base import SessionLocal
from app.models.health import ServiceHealthRecord
from app.services.health_monitor import HealthMonitor
from app.utils.helpers import utcnow
from app.utils.logger import log

router = APIRouter(prefix="/monitor", tags=["monitoring"])

_monitor = None


def get_monitor() -> HealthMonitor:
    global _monitor
    if _monitor is None:
        _monitor = HealthMonitor()
    return _monitor


@router.post("/run")
async def run_health_cycle(monitor: HealthMonitor = Depends(get_monitor)):
    """Run one poll/detect/alert cycle now"""
    log.info("Manual health monitor cycle requested")
    return await monitor.run_cycle()


@router.get("/status")
async def get_service_status(monitor: HealthMonitor = Depends(get_monitor)):
    """Current status of every service (its latest record) plus alert delivery stats"""
    db = SessionLocal()
    try:
        latest = db.query(
            ServiceHealthRecord.service_name,
            func.max(ServiceHealthRecord.id).label("latest_id")
        ).group_by(ServiceHealthRecord.service_name).subquery()

        records = db.query(ServiceHealthRecord).join(
            latest, ServiceHealthRecord.id == latest.c.latest_id
        ).order_by(ServiceHealthRecord.service_name).all()

        return {
            "services": [
                {
                    "service": r.service_name,
                    "status": r.status,
                    "latency_ms": r.latency_ms,
                    "message": r.message,
                    "checked_at": r.checked_at.isoformat() if r.checked_at else None,
                }
                for r in records
            ],
            "alert_delivery": monitor.alert_service.get_delivery_stats(),
            "timestamp": utcnow().isoformat(),
        }
    finally:
        db.close()


@router.get("/history")
async def get_health_history(
    service: Optional[str] = Query(None, description="Restrict to one service"),
    hours: int = Query(24, ge=1, le=24 * 30),
    limit: int = Query(200, ge=1, le=1000)
):
    """Recent health records, newest first"""
    cutoff = utcnow() - timedelta(hours=hours)
    db = SessionLocal()
    try:
        query = db.query(ServiceHealthRecord).filter(ServiceHealthRecord.checked_at >= cutoff)
        if service:
            query = query.filter(ServiceHealthRecord.service_name == service)
        records = query.order_by(
            ServiceHealthRecord.checked_at.desc(), ServiceHealthRecord.id.desc()
        ).limit(limit).all()

        return {
            "period": f"Last {hours} hours",
            "total_records": len(records),
            "alerts_sent": sum(1 for r in records if r.alert_sent),
            "records": [
                {
                    "service": r.service_name,
                    "status": r.status,
                    "latency_ms": r.latency_ms,
                    "message": r.message,
                    "checked_at": r.checked_at.isoformat() if r.checked_at else None,
                    "alert_sent": r.alert_sent,
                    "alert_type": r.alert_type,
                }
                for r in records
            ],
        }
    finally:
        db.close()
