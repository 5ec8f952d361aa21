"""
Health poller tests: status classification, recording and the aggregate summary.
"""
import asyncio
import json

import httpx

from app.connectors.registry import SYSTEM_SERVICES, get_service
from app.models.base import SessionLocal
from app.models.health import ServiceHealthRecord
from app.models.integration import Integration
from app.services.health_poller import DEGRADED, HEALTHY, UNHEALTHY, HealthPoller, CheckResult, summarize
from app.utils.helpers import utcnow


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


def _poller(responses, services=("google-ads", "ai-marketing", "send-2fa-code"), seen=None):
    """Poller whose checks answer from ``responses``: service -> (status, body) or exception"""
    def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1]
        if seen is not None:
            seen[name] = json.loads(request.content)
        answer = responses[name]
        if isinstance(answer, Exception):
            raise answer
        status, body = answer
        return httpx.Response(status, json=body)

    return HealthPoller(
        services=[get_service(s) for s in services],
        transport=httpx.MockTransport(handler),
    )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def test_classify_status_codes_and_bodies():
    poller = HealthPoller()
    assert poller.classify(200, 120, {"status": "healthy"}) == (HEALTHY, None)
    assert poller.classify(200, 120, {}) == (HEALTHY, None)
    assert poller.classify(200, 120, {"status": "degraded", "message": "slow db"}) == (DEGRADED, "slow db")
    assert poller.classify(200, 120, {"status": "unhealthy"})[0] == UNHEALTHY
    assert poller.classify(503, 120, {"status": "healthy"}) == (UNHEALTHY, "HTTP 503")
    assert poller.classify(404, 120, None) == (UNHEALTHY, "HTTP 404")


def test_slow_success_is_degraded():
    poller = HealthPoller(degraded_latency_ms=3000)
    status, message = poller.classify(200, 4500, {"status": "healthy"})
    assert status == DEGRADED
    assert "4500" in message


def test_failed_checks_are_recorded_unhealthy():
    poller = _poller({
        "google-ads": (200, {"status": "healthy", "version": "2.1.0"}),
        "ai-marketing": httpx.ConnectError("connection refused"),
        "send-2fa-code": (500, {"error": "boom"}),
    })
    results = {r.service_name: r for r in _run(poller.poll_all())}

    assert results["google-ads"].status == HEALTHY
    assert results["google-ads"].version == "2.1.0"
    assert results["ai-marketing"].status == UNHEALTHY
    assert results["send-2fa-code"].message == "HTTP 500"


def test_timeout_is_unhealthy_not_raised():
    poller = _poller({
        "google-ads": httpx.ReadTimeout("timed out"),
        "ai-marketing": (200, {}),
        "send-2fa-code": (200, {}),
    })
    results = {r.service_name: r for r in _run(poller.poll_all())}
    assert results["google-ads"].status == UNHEALTHY
    assert results["google-ads"].message == "Timeout"


def test_check_bodies_follow_catalog():
    seen = {}
    poller = _poller({n: (200, {}) for n in ("google-ads", "ai-marketing", "send-2fa-code")}, seen=seen)
    _run(poller.check_services())
    assert seen["google-ads"] == {"action": "health"}
    assert seen["ai-marketing"] == {"type": "health"}


# ---------------------------------------------------------------------------
# Recording and monitored set
# ---------------------------------------------------------------------------

def test_poll_all_appends_one_record_per_service_every_cycle():
    poller = _poller({n: (200, {}) for n in ("google-ads", "ai-marketing", "send-2fa-code")})
    _run(poller.poll_all())
    _run(poller.poll_all())

    db = SessionLocal()
    try:
        assert db.query(ServiceHealthRecord).count() == 6
        assert db.query(ServiceHealthRecord).filter_by(service_name="google-ads").count() == 2
    finally:
        db.close()


def test_monitored_set_is_connected_platforms_plus_system_services():
    db = SessionLocal()
    try:
        db.add(Integration(client_id="c1", platform="shopify", is_connected=True))
        db.add(Integration(client_id="c2", platform="tiktok_ads", is_connected=False))
        db.commit()
    finally:
        db.close()

    monitored = HealthPoller().monitored_services()
    assert "shopify-api" in monitored
    assert "tiktok-ads" not in monitored
    assert SYSTEM_SERVICES <= monitored

    poller = _poller({n: (200, {}) for n in ("google-ads", "ai-marketing", "send-2fa-code")})
    flags = {r.service_name: r.monitored for r in _run(poller.poll_all())}
    assert flags == {"google-ads": False, "ai-marketing": True, "send-2fa-code": True}


# ---------------------------------------------------------------------------
# Aggregate summary
# ---------------------------------------------------------------------------

def _result(status):
    return CheckResult(service_name="s", display_name="S", status=status, latency_ms=10, checked_at=utcnow())


def test_summary_overall_status():
    assert summarize([_result(HEALTHY), _result(HEALTHY)])["status"] == HEALTHY
    assert summarize([_result(HEALTHY), _result(DEGRADED)])["status"] == DEGRADED
    assert summarize([_result(HEALTHY), _result(UNHEALTHY)])["status"] == DEGRADED
    assert summarize([_result(UNHEALTHY), _result(UNHEALTHY)])["status"] == UNHEALTHY

    summary = summarize([_result(HEALTHY), _result(DEGRADED), _result(UNHEALTHY)])["summary"]
    assert summary == {"total": 3, HEALTHY: 1, DEGRADED: 1, UNHEALTHY: 1}
