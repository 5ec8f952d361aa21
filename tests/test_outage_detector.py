"""
Outage detection and alerting tests.

Detector tests write health history directly; monitor tests drive full
cycles through a mocked health-check transport and a recording alert service.
"""
import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from app.connectors.registry import get_service
from app.models.base import SessionLocal
from app.models.health import MonitoringPreference, ServiceHealthRecord
from app.services import alert_service as alert_module
from app.services.alert_service import AlertService, render_health_alert
from app.services.health_monitor import HealthMonitor
from app.services.health_poller import HealthPoller
from app.services.outage_detector import DOWN, RECOVERED, AlertTransition, OutageDetector

T0 = datetime(2026, 3, 1, 9, 0, 0)


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


def _record(service, status, at, alert_sent=False, alert_type=None):
    db = SessionLocal()
    try:
        db.add(ServiceHealthRecord(service_name=service, status=status, checked_at=at,
                                   latency_ms=100, alert_sent=alert_sent, alert_type=alert_type))
        db.commit()
    finally:
        db.close()


def _subscribe(service, user="ops-1", down=True, recovery=True, email=None):
    db = SessionLocal()
    try:
        db.add(MonitoringPreference(user_id=user, email=email, service_name=service,
                                    notify_on_down=down, notify_on_recovery=recovery))
        db.commit()
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Debounce
# ---------------------------------------------------------------------------

def test_single_unhealthy_sample_after_healthy_does_not_alert():
    detector = OutageDetector(threshold_minutes=5)
    _record("google-ads", "healthy", T0)
    _record("google-ads", "unhealthy", T0 + timedelta(minutes=1))

    assert detector.evaluate("google-ads", now=T0 + timedelta(minutes=1)) is None


def test_two_unhealthy_samples_inside_window_after_healthy_do_not_alert():
    detector = OutageDetector(threshold_minutes=5)
    _record("google-ads", "healthy", T0)
    _record("google-ads", "unhealthy", T0 + timedelta(minutes=1))
    _record("google-ads", "unhealthy", T0 + timedelta(minutes=2))

    # The healthy sample at T0 still falls inside the window
    assert detector.evaluate("google-ads", now=T0 + timedelta(minutes=2)) is None


def test_sustained_outage_then_recovery():
    """healthy T0, unhealthy T1, unhealthy T1+6 -> down; healthy T1+10 -> recovered, ~10 min"""
    detector = OutageDetector(threshold_minutes=5)
    t1 = T0 + timedelta(minutes=1)
    _record("google-ads", "healthy", T0)
    _record("google-ads", "unhealthy", t1)
    assert detector.evaluate("google-ads", now=t1) is None

    _record("google-ads", "unhealthy", t1 + timedelta(minutes=6))
    down = detector.evaluate("google-ads", now=t1 + timedelta(minutes=6))
    assert down.type == DOWN
    assert down.previous_status == "healthy"
    assert down.display_name == "Google Ads"

    _record("google-ads", "healthy", t1 + timedelta(minutes=10))
    recovered = detector.evaluate("google-ads", now=t1 + timedelta(minutes=10))
    assert recovered.type == RECOVERED
    assert recovered.previous_status == "unhealthy"
    assert recovered.downtime_minutes == pytest.approx(10, abs=0.5)


def test_degraded_counts_as_non_healthy():
    detector = OutageDetector(threshold_minutes=5)
    _record("shopify-api", "degraded", T0)
    _record("shopify-api", "unhealthy", T0 + timedelta(minutes=6))
    assert detector.evaluate("shopify-api", now=T0 + timedelta(minutes=6)).type == DOWN


def test_only_one_down_per_outage_run():
    detector = OutageDetector(threshold_minutes=5)
    _record("google-ads", "unhealthy", T0)
    _record("google-ads", "unhealthy", T0 + timedelta(minutes=6), alert_sent=True, alert_type=DOWN)
    _record("google-ads", "unhealthy", T0 + timedelta(minutes=12))

    assert detector.evaluate("google-ads", now=T0 + timedelta(minutes=12)) is None


def test_steady_healthy_service_has_no_transition():
    detector = OutageDetector()
    _record("google-ads", "healthy", T0)
    _record("google-ads", "healthy", T0 + timedelta(minutes=1))
    assert detector.evaluate("google-ads", now=T0 + timedelta(minutes=1)) is None
    assert detector.evaluate("never-seen", now=T0) is None


# ---------------------------------------------------------------------------
# Preferences, cooldown, retention
# ---------------------------------------------------------------------------

def test_preferences_filter_by_transition_type():
    _subscribe("google-ads", user="a", down=True, recovery=False, email="a@agency.test")
    _subscribe("google-ads", user="b", down=True, recovery=True)
    _subscribe("shopify-api", user="a", down=False, recovery=True)

    detector = OutageDetector()
    kept = detector.filter_by_preferences([
        AlertTransition("google-ads", "Google Ads", DOWN, "unhealthy", "healthy"),
        AlertTransition("shopify-api", "Shopify API", DOWN, "unhealthy", "healthy"),
        AlertTransition("send-2fa-code", "2FA Service", RECOVERED, "healthy", "unhealthy"),
    ])

    assert [(t.service_name, t.subscribers) for t in kept] == [("google-ads", ["a", "b"])]
    assert kept[0].recipients == ["a@agency.test"]


def test_cooldown_reads_latest_sent_record_across_services():
    detector = OutageDetector(cooldown_minutes=15)
    assert detector.cooldown_active(now=T0) is False

    _record("google-ads", "unhealthy", T0, alert_sent=True, alert_type=DOWN)
    assert detector.last_alert_at() == T0
    assert detector.cooldown_active(now=T0 + timedelta(minutes=10)) is True
    assert detector.cooldown_active(now=T0 + timedelta(minutes=16)) is False


def test_zero_cooldown_and_threshold_are_kept():
    detector = OutageDetector(cooldown_minutes=0, threshold_minutes=0)
    assert detector.cooldown_minutes == 0
    assert detector.threshold_minutes == 0

    _record("google-ads", "unhealthy", T0, alert_sent=True, alert_type=DOWN)
    assert detector.cooldown_active(now=T0 + timedelta(seconds=1)) is False


def test_purge_removes_records_past_retention():
    _record("google-ads", "healthy", T0 - timedelta(days=31))
    _record("google-ads", "healthy", T0 - timedelta(days=29))

    assert OutageDetector(retention_days=30).purge(now=T0) == 1

    db = SessionLocal()
    try:
        assert db.query(ServiceHealthRecord).count() == 1
    finally:
        db.close()


def test_alert_rendering_leads_with_outages():
    down = AlertTransition("google-ads", "Google Ads", DOWN, "unhealthy", "healthy", message="HTTP 500")
    up = AlertTransition("shopify-api", "Shopify API", RECOVERED, "healthy", "unhealthy", downtime_minutes=12)

    message = render_health_alert([down, up], "2026-03-01 09:00:00 UTC")
    assert message.subject == "Service outage: 1 service unavailable"
    assert "Google Ads: unhealthy (HTTP 500)" in message.text
    assert "Shopify API is back online after 12 minutes" in message.text

    assert render_health_alert([up]).subject == "Services recovered: 1 service back online"


def _capturing_email_service():
    service = AlertService()
    service.smtp_configured = True
    service.slack_configured = False
    delivered = []
    service._deliver_email = delivered.append
    return service, delivered


def test_email_goes_to_opted_in_subscribers_and_ops(monkeypatch):
    monkeypatch.setattr(alert_module.settings, "alert_email_to", "ops@agency.test")
    monkeypatch.setattr(alert_module.settings, "alert_email_from", "alerts@agency.test")
    _subscribe("google-ads", user="a", email="a@agency.test")
    _subscribe("google-ads", user="b", email="b@agency.test", down=False)
    kept = OutageDetector().filter_by_preferences([
        AlertTransition("google-ads", "Google Ads", DOWN, "unhealthy", "healthy"),
    ])

    service, delivered = _capturing_email_service()
    result = _run(service.send_health_alerts(kept, "2026-03-01 09:00:00 UTC"))

    assert result["success"] is True
    assert [m["To"] for m in delivered] == ["a@agency.test, ops@agency.test"]
    assert delivered[0]["Subject"] == "Service outage: 1 service unavailable"
    assert service.get_delivery_stats()["total_sent"] == 1


def test_email_without_any_recipient_is_not_sent(monkeypatch):
    monkeypatch.setattr(alert_module.settings, "alert_email_to", None)
    service, delivered = _capturing_email_service()
    transition = AlertTransition("google-ads", "Google Ads", DOWN, "unhealthy", "healthy")

    result = _run(service.send_health_alerts([transition]))

    assert result["success"] is False
    assert result["results"]["email"]["final_error"] == "No email recipients"
    assert delivered == []


# ---------------------------------------------------------------------------
# Full monitor cycles
# ---------------------------------------------------------------------------

class RecordingAlertService:
    def __init__(self, success=True):
        self.success = success
        self.batches = []

    async def send_health_alerts(self, transitions, timestamp=None):
        self.batches.append([t.service_name for t in transitions])
        return {"success": self.success, "results": {}}


def _monitor(state, alert_service):
    def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200 if state[name] == "healthy" else 503, json={"status": state[name]})

    poller = HealthPoller(
        services=[get_service("send-2fa-code"), get_service("ai-marketing")],
        transport=httpx.MockTransport(handler),
    )
    return HealthMonitor(poller=poller, detector=OutageDetector(threshold_minutes=5, cooldown_minutes=15),
                         alert_service=alert_service, alerts_enabled=True)


def test_monitor_cycle_alerts_once_and_cooldown_drops_next_batch():
    _subscribe("send-2fa-code")
    _subscribe("ai-marketing")
    state = {"send-2fa-code": "healthy", "ai-marketing": "healthy"}
    alerts = RecordingAlertService()
    monitor = _monitor(state, alerts)

    _run(monitor.run_cycle(now=T0))
    state["send-2fa-code"] = "unhealthy"
    first = _run(monitor.run_cycle(now=T0 + timedelta(minutes=1)))
    assert first["alerts_detected"] == [] and alerts.batches == []

    confirmed = _run(monitor.run_cycle(now=T0 + timedelta(minutes=7)))
    assert confirmed["alerts_sent"] == 1
    assert alerts.batches == [["send-2fa-code"]]

    # A second outage inside the cooldown is detected but not sent
    state["ai-marketing"] = "unhealthy"
    _run(monitor.run_cycle(now=T0 + timedelta(minutes=8)))
    dropped = _run(monitor.run_cycle(now=T0 + timedelta(minutes=14)))
    assert [a["service"] for a in dropped["alerts_detected"]] == ["ai-marketing"]
    assert dropped["cooldown_active"] is True
    assert dropped["alerts_sent"] == 0
    assert alerts.batches == [["send-2fa-code"]]

    db = SessionLocal()
    try:
        sent = db.query(ServiceHealthRecord).filter(ServiceHealthRecord.alert_sent == True).all()  # noqa: E712
        assert [(r.service_name, r.alert_type, r.checked_at) for r in sent] == [
            ("send-2fa-code", DOWN, T0 + timedelta(minutes=7))
        ]
    finally:
        db.close()


def test_failed_delivery_does_not_mark_records():
    _subscribe("send-2fa-code")
    state = {"send-2fa-code": "unhealthy", "ai-marketing": "healthy"}
    alerts = RecordingAlertService(success=False)
    monitor = _monitor(state, alerts)

    _run(monitor.run_cycle(now=T0))
    result = _run(monitor.run_cycle(now=T0 + timedelta(minutes=6)))

    assert alerts.batches == [["send-2fa-code"]]
    assert result["alerts_sent"] == 0
    assert OutageDetector().last_alert_at() is None


class SlowAlertService(RecordingAlertService):
    async def send_health_alerts(self, transitions, timestamp=None):
        await asyncio.sleep(0.05)
        return await super().send_health_alerts(transitions, timestamp)


def test_overlapping_cycles_send_one_batch():
    _subscribe("send-2fa-code")
    state = {"send-2fa-code": "unhealthy", "ai-marketing": "healthy"}
    alerts = SlowAlertService()
    monitor = _monitor(state, alerts)
    _record("send-2fa-code", "unhealthy", T0)

    async def overlapping():
        at = T0 + timedelta(minutes=6)
        return await asyncio.gather(monitor.run_cycle(now=at), monitor.run_cycle(now=at))

    first, second = _run(overlapping())

    assert alerts.batches == [["send-2fa-code"]]
    assert first["alerts_sent"] + second["alerts_sent"] == 1
