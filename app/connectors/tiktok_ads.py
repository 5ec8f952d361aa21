"""
TikTok Ads Adapter
"""
from typing import Any, Dict

from app.connectors.base import BasePlatformAdapter
from app.connectors.metrics import AdsMetrics, Platform


class TikTokAdsAdapter(BasePlatformAdapter):
    platform = Platform.TIKTOK_ADS
    function_name = "tiktok-ads"
    kind = "ads"

    def normalize(self, payload: Dict[str, Any]) -> AdsMetrics:
        scopes = ("totals",)
        return AdsMetrics(
            cost=self._pick(payload, scopes, "spend", "cost"),
            conversions=self._pick(payload, scopes, "conversions"),
            conversion_value=self._pick(payload, scopes, "conversionValue", "totalConversionValue"),
            impressions=self._pick(payload, scopes, "impressions"),
            clicks=self._pick(payload, scopes, "clicks"),
            raw=payload,
        )
