"""
Google Ads Adapter

The google-ads function reports account totals under ``account``.
"""
from typing import Any, Dict

from app.connectors.base import BasePlatformAdapter
from app.connectors.metrics import AdsMetrics, Platform


class GoogleAdsAdapter(BasePlatformAdapter):
    """Adapter for the google-ads function"""

    platform = Platform.GOOGLE_ADS
    function_name = "google-ads"
    kind = "ads"

    def normalize(self, payload: Dict[str, Any]) -> AdsMetrics:
        scopes = ("account",)
        return AdsMetrics(
            cost=self._pick(payload, scopes, "totalCost", "cost", "spend"),
            conversions=self._pick(payload, scopes, "totalConversions", "conversions"),
            conversion_value=self._pick(payload, scopes, "totalConversionValue", "conversionValue", "conversion_value"),
            impressions=self._pick(payload, scopes, "totalImpressions", "impressions"),
            clicks=self._pick(payload, scopes, "totalClicks", "clicks"),
            raw=payload,
        )
