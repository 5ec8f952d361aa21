"""
Health Monitor
One poll-detect-alert cycle over the service catalog
"""
import asyncio
import time
from datetime import datetime
from typing import Any, Dict, Optional

from app.config import get_settings
from app.services.alert_service import AlertService
from app.services.health_poller import HealthPoller, summarize
from app.services.outage_detector import OutageDetector
from app.utils.helpers import utcnow
from app.utils.logger import log

settings = get_settings()


class HealthMonitor:
    """
    Runs poll -> record -> detect -> filter -> cooldown -> dispatch -> mark -> purge.

    Cooldown state lives in service_health_history (alert_sent rows), so
    separate processes running cycles agree on it. Within one process,
    cycles (scheduled and manual) run one at a time so a batch is never
    dispatched twice.
    """

    def __init__(
        self,
        poller: Optional[HealthPoller] = None,
        detector: Optional[OutageDetector] = None,
        alert_service: Optional[AlertService] = None,
        alerts_enabled: Optional[bool] = None
    ):
        self.poller = poller or HealthPoller()
        self.detector = detector or OutageDetector()
        self.alert_service = alert_service or AlertService()
        self.alerts_enabled = settings.enable_health_alerts if alerts_enabled is None else alerts_enabled
        self._cycle_lock = asyncio.Lock()

    async def run_cycle(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        if self._cycle_lock.locked():
            log.info("Health check cycle already running, waiting for it to finish")
        async with self._cycle_lock:
            return await self._run_cycle(now)

    async def _run_cycle(self, now: Optional[datetime]) -> Dict[str, Any]:
        started = time.time()
        now = now or utcnow()
        log.info("Starting health check cycle...")

        results = await self.poller.poll_all(now)
        monitored = [r.service_name for r in results if r.monitored]

        candidates = self.detector.detect(monitored, now)
        alerts = self.detector.filter_by_preferences(candidates)

        sent = []
        cooldown_active = False
        delivery = None
        if alerts and self.alerts_enabled:
            cooldown_active = self.detector.cooldown_active(now)
            if cooldown_active:
                log.info(f"Skipping {len(alerts)} alert(s), cooldown period not expired")
            else:
                delivery = await self.alert_service.send_health_alerts(
                    alerts, now.strftime("%Y-%m-%d %H:%M:%S UTC")
                )
                if delivery["success"]:
                    self.detector.mark_sent(alerts, now)
                    sent = alerts
                    log.info(f"Sent {len(alerts)} alert(s) for monitored services")
                else:
                    log.error(f"Health alert delivery failed for {len(alerts)} alert(s)")

        self.detector.purge(now)

        duration_ms = int((time.time() - started) * 1000)
        summary = summarize(results)
        log.info(f"Health check cycle completed in {duration_ms}ms: {summary['status']}")
        return {
            "success": True,
            "timestamp": now.isoformat(),
            "status": summary["status"],
            "summary": summary["summary"],
            "monitored_services": sorted(monitored),
            "alerts_detected": [c.to_dict() for c in candidates],
            "alerts_sent": len(sent),
            "cooldown_active": cooldown_active,
            "delivery": delivery,
            "duration_ms": duration_ms,
        }
