"""
Health Poller
Checks every remote function concurrently and records one health sample
per service per cycle
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

import httpx
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.connectors.registry import SERVICE_CATALOG, SYSTEM_SERVICES, MonitoredService, service_for_platform
from app.models.base import SessionLocal
from app.models.health import ServiceHealthRecord
from app.models.integration import Integration
from app.utils.errors import PollTimeoutError, StorageError
from app.utils.helpers import utcnow
from app.utils.logger import log

settings = get_settings()

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"

_BODY_STATUS = {
    "healthy": HEALTHY,
    "ok": HEALTHY,
    "degraded": DEGRADED,
    "warning": DEGRADED,
    "unhealthy": UNHEALTHY,
    "error": UNHEALTHY,
    "down": UNHEALTHY,
}

# Process start, reported as uptime by the aggregate health summary
_STARTED_AT = time.time()


@dataclass
class CheckResult:
    """Outcome of one health check"""
    service_name: str
    display_name: str
    status: str
    latency_ms: float
    checked_at: datetime
    message: Optional[str] = None
    version: Optional[str] = None
    monitored: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.service_name,
            "display_name": self.display_name,
            "status": self.status,
            "latency_ms": round(self.latency_ms),
            "message": self.message,
            "version": self.version,
            "monitored": self.monitored,
            "last_check": self.checked_at.isoformat(),
        }


class HealthPoller:
    """Concurrent checker for the service catalog"""

    def __init__(
        self,
        services: Optional[List[MonitoredService]] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        degraded_latency_ms: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        session_factory=SessionLocal
    ):
        self.services = services or SERVICE_CATALOG
        self.base_url = (base_url or settings.functions_base_url).rstrip("/")
        self.timeout = timeout or settings.health_check_timeout_seconds
        self.degraded_latency_ms = degraded_latency_ms or settings.health_degraded_latency_ms
        self.transport = transport
        self.session_factory = session_factory

    def monitored_services(self) -> Set[str]:
        """
        Services that can raise alerts: functions backing a connected
        integration of any client, plus the system functions
        """
        db = self.session_factory()
        try:
            platforms = db.query(Integration.platform).filter(
                Integration.is_connected == True  # noqa: E712
            ).distinct().all()
        finally:
            db.close()

        monitored = set(SYSTEM_SERVICES)
        for (platform,) in platforms:
            name = service_for_platform(platform)
            if name:
                monitored.add(name)
        return monitored

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        key = settings.identity_anon_key or settings.functions_service_key
        if key:
            headers["Authorization"] = f"Bearer {key}"
        return headers

    async def _post(self, client: httpx.AsyncClient, service: MonitoredService) -> httpx.Response:
        try:
            return await client.post(
                f"{self.base_url}/{service.name}", json=service.check_body, headers=self._headers()
            )
        except httpx.TimeoutException:
            raise PollTimeoutError(service.name, self.timeout)

    def classify(self, status_code: int, latency_ms: float, body: Any) -> tuple:
        """(status, message) for a completed HTTP health check"""
        if status_code == 503:
            return UNHEALTHY, "HTTP 503"
        if not 200 <= status_code < 300:
            return UNHEALTHY, f"HTTP {status_code}"

        reported = body.get("status") if isinstance(body, dict) else None
        message = body.get("message") if isinstance(body, dict) else None

        if reported is None:
            status = HEALTHY
        else:
            status = _BODY_STATUS.get(str(reported).lower(), DEGRADED)

        if status == HEALTHY and latency_ms > self.degraded_latency_ms:
            return DEGRADED, f"Slow response ({latency_ms:.0f}ms)"
        return status, (None if status == HEALTHY else message)

    async def check_service(self, client: httpx.AsyncClient, service: MonitoredService) -> CheckResult:
        """Check one service; never raises"""
        started = time.monotonic()
        version = None
        try:
            response = await self._post(client, service)
            latency_ms = (time.monotonic() - started) * 1000
            try:
                body = response.json()
            except ValueError:
                body = None
            status, message = self.classify(response.status_code, latency_ms, body)
            if isinstance(body, dict):
                version = body.get("version")
        except PollTimeoutError as e:
            latency_ms = (time.monotonic() - started) * 1000
            status, message = UNHEALTHY, "Timeout"
            log.warning(e.message)
        except httpx.HTTPError as e:
            latency_ms = (time.monotonic() - started) * 1000
            status, message = UNHEALTHY, str(e) or "Connection failed"

        return CheckResult(
            service_name=service.name,
            display_name=service.display_name,
            status=status,
            latency_ms=latency_ms,
            checked_at=utcnow(),
            message=message,
            version=version,
        )

    async def check_services(self) -> Dict[str, Any]:
        """Check everything and summarize, without recording anything"""
        results = await self._check_all()
        return summarize(results)

    async def _check_all(self) -> List[CheckResult]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return list(await asyncio.gather(*(self.check_service(client, s) for s in self.services)))

    async def poll_all(self, now: Optional[datetime] = None) -> List[CheckResult]:
        """
        Check every service and append one health record each

        Raises:
            StorageError: the cycle's records could not be written
        """
        results = await self._check_all()
        monitored = self.monitored_services()
        for result in results:
            result.monitored = result.service_name in monitored
            if now is not None:
                result.checked_at = now

        self.record(results)
        unhealthy = sum(1 for r in results if r.status != HEALTHY)
        log.info(f"Polled {len(results)} services, {unhealthy} not healthy")
        return results

    def record(self, results: List[CheckResult]):
        db = self.session_factory()
        try:
            db.add_all([
                ServiceHealthRecord(
                    service_name=r.service_name,
                    status=r.status,
                    latency_ms=round(r.latency_ms),
                    message=r.message,
                    checked_at=r.checked_at,
                    alert_sent=False,
                )
                for r in results
            ])
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"Error storing health records: {str(e)}")
            raise StorageError("Could not store health records") from e
        finally:
            db.close()


def summarize(results: List[CheckResult]) -> Dict[str, Any]:
    """Aggregate health: unhealthy only when every service is down"""
    counts = {
        "total": len(results),
        HEALTHY: sum(1 for r in results if r.status == HEALTHY),
        DEGRADED: sum(1 for r in results if r.status == DEGRADED),
        UNHEALTHY: sum(1 for r in results if r.status == UNHEALTHY),
    }

    overall = HEALTHY
    if counts[UNHEALTHY] > 0:
        overall = UNHEALTHY if counts[UNHEALTHY] == counts["total"] else DEGRADED
    elif counts[DEGRADED] > 0:
        overall = DEGRADED

    return {
        "status": overall,
        "timestamp": utcnow().isoformat(),
        "uptime": int(time.time() - _STARTED_AT),
        "services": [r.to_dict() for r in results],
        "summary": counts,
    }
