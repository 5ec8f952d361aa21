"""
Normalized platform metrics

Every platform adapter translates its vendor JSON into exactly one of the
variants below. Downstream code (snapshot store, aggregator) only ever sees
these types, never raw vendor payloads.
"""
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional, Union

from app.utils.errors import AdapterFetchError, ValidationError
from app.utils.helpers import to_number


class Platform(str, Enum):
    """Supported external platforms"""
    GOOGLE_ADS = "google_ads"
    FACEBOOK_ADS = "facebook_ads"
    TIKTOK_ADS = "tiktok_ads"
    GOOGLE_ANALYTICS = "google_analytics"
    SHOPIFY = "shopify"
    WOOCOMMERCE = "woocommerce"

    @classmethod
    def parse(cls, value: Any) -> "Platform":
        try:
            return value if isinstance(value, cls) else cls(str(value))
        except ValueError:
            raise ValidationError(f"Unknown platform: {value}")


ADS_PLATFORMS = (Platform.GOOGLE_ADS, Platform.FACEBOOK_ADS, Platform.TIKTOK_ADS)
COMMERCE_PLATFORMS = (Platform.SHOPIFY, Platform.WOOCOMMERCE)
ANALYTICS_PLATFORMS = (Platform.GOOGLE_ANALYTICS,)


@dataclass(frozen=True)
class _MetricsBase:
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        values = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "raw"}
        return values

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)} - {"raw", "kind"}
        return cls(**{k: to_number(data.get(k)) for k in known})


@dataclass(frozen=True)
class AdsMetrics(_MetricsBase):
    """Paid media spend and results"""
    kind: str = "ads"
    cost: float = 0.0
    conversions: float = 0.0
    conversion_value: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0


@dataclass(frozen=True)
class CommerceMetrics(_MetricsBase):
    """Storefront orders and revenue"""
    kind: str = "commerce"
    revenue: float = 0.0
    orders: float = 0.0
    avg_order_value: float = 0.0
    conversion_rate: float = 0.0
    sessions: float = 0.0


@dataclass(frozen=True)
class AnalyticsMetrics(_MetricsBase):
    """Site traffic"""
    kind: str = "analytics"
    sessions: float = 0.0
    users: float = 0.0
    pageviews: float = 0.0
    bounce_rate: float = 0.0
    conversion_rate: float = 0.0


NormalizedMetrics = Union[AdsMetrics, CommerceMetrics, AnalyticsMetrics]

_VARIANTS = {
    "ads": AdsMetrics,
    "commerce": CommerceMetrics,
    "analytics": AnalyticsMetrics,
}


def metrics_from_dict(data: Optional[Dict[str, Any]]) -> Optional[NormalizedMetrics]:
    """Rebuild a metrics variant from its stored dict form"""
    if not data:
        return None
    variant = _VARIANTS.get(data.get("kind"))
    if variant is None:
        return None
    return variant.from_dict(data)


@dataclass(frozen=True)
class FetchError:
    """A failed platform fetch, returned as a value across the fan-out boundary"""
    platform: str
    message: str
    status_code: Optional[int] = None

    def to_exception(self) -> AdapterFetchError:
        return AdapterFetchError(self.platform, self.message, self.status_code)

    def to_dict(self) -> Dict[str, Any]:
        return {"platform": self.platform, "error": self.message, "status_code": self.status_code}


FetchResult = Union[AdsMetrics, CommerceMetrics, AnalyticsMetrics, FetchError]
