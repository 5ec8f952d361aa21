"""
Google Analytics Adapter

Traffic only; analytics never contributes to revenue or spend totals.
"""
from typing import Any, Dict

from app.connectors.base import BasePlatformAdapter
from app.connectors.metrics import AnalyticsMetrics, Platform


class GoogleAnalyticsAdapter(BasePlatformAdapter):
    """Adapter for the google-analytics function"""

    platform = Platform.GOOGLE_ANALYTICS
    function_name = "google-analytics"
    kind = "analytics"

    def normalize(self, payload: Dict[str, Any]) -> AnalyticsMetrics:
        scopes = ("metrics", "summary")
        return AnalyticsMetrics(
            sessions=self._pick(payload, scopes, "sessions"),
            users=self._pick(payload, scopes, "users", "activeUsers"),
            pageviews=self._pick(payload, scopes, "pageviews", "screenPageViews"),
            bounce_rate=self._pick(payload, scopes, "bounceRate", "bounce_rate"),
            conversion_rate=self._pick(payload, scopes, "conversionRate", "conversion_rate"),
            raw=payload,
        )
