"""
Facebook Ads Adapter
"""
from typing import Any, Dict

from app.connectors.base import BasePlatformAdapter
from app.connectors.metrics import AdsMetrics, Platform


class FacebookAdsAdapter(BasePlatformAdapter):
    """Adapter for the facebook-ads function (totals under ``totals``)"""

    platform = Platform.FACEBOOK_ADS
    function_name = "facebook-ads"
    kind = "ads"

    def normalize(self, payload: Dict[str, Any]) -> AdsMetrics:
        scopes = ("totals",)
        return AdsMetrics(
            cost=self._pick(payload, scopes, "cost", "spend", "totalCost"),
            conversions=self._pick(payload, scopes, "conversions", "totalConversions"),
            conversion_value=self._pick(payload, scopes, "conversionValue", "purchaseValue", "conversion_value"),
            impressions=self._pick(payload, scopes, "impressions"),
            clicks=self._pick(payload, scopes, "clicks"),
            raw=payload,
        )
