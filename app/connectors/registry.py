"""
Platform adapter registry and the health-check service catalog
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

import httpx

from app.connectors.base import BasePlatformAdapter
from app.connectors.facebook_ads import FacebookAdsAdapter
from app.connectors.google_ads import GoogleAdsAdapter
from app.connectors.google_analytics import GoogleAnalyticsAdapter
from app.connectors.metrics import FetchResult, Platform
from app.connectors.shopify import ShopifyAdapter
from app.connectors.tiktok_ads import TikTokAdsAdapter
from app.connectors.woocommerce import WooCommerceAdapter

ADAPTERS: Dict[Platform, Type[BasePlatformAdapter]] = {
    Platform.GOOGLE_ADS: GoogleAdsAdapter,
    Platform.FACEBOOK_ADS: FacebookAdsAdapter,
    Platform.TIKTOK_ADS: TikTokAdsAdapter,
    Platform.GOOGLE_ANALYTICS: GoogleAnalyticsAdapter,
    Platform.SHOPIFY: ShopifyAdapter,
    Platform.WOOCOMMERCE: WooCommerceAdapter,
}


def get_adapter(platform, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs) -> BasePlatformAdapter:
    """Instantiate the adapter for a platform id (raises ValidationError if unknown)"""
    return ADAPTERS[Platform.parse(platform)](transport=transport, **kwargs)


async def fetch(
    client_id: str,
    platform,
    start_date: str,
    end_date: str,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> FetchResult:
    """Uniform fetch contract across all platforms"""
    return await get_adapter(platform, transport=transport).fetch(client_id, start_date, end_date)


@dataclass(frozen=True)
class MonitoredService:
    """One remote function in the health-check catalog"""
    name: str
    display_name: str
    check_body: Dict[str, Any] = field(default_factory=lambda: {"action": "health"})
    platform: Optional[Platform] = None


SERVICE_CATALOG: List[MonitoredService] = [
    MonitoredService("google-ads", "Google Ads", platform=Platform.GOOGLE_ADS),
    MonitoredService("facebook-ads", "Facebook Ads", platform=Platform.FACEBOOK_ADS),
    MonitoredService("tiktok-ads", "TikTok Ads", platform=Platform.TIKTOK_ADS),
    MonitoredService("google-analytics", "Google Analytics", platform=Platform.GOOGLE_ANALYTICS),
    MonitoredService("shopify-api", "Shopify API", platform=Platform.SHOPIFY),
    MonitoredService("woocommerce-api", "WooCommerce API", platform=Platform.WOOCOMMERCE),
    MonitoredService("send-2fa-code", "2FA Service"),
    MonitoredService("ai-marketing", "AI Marketing", check_body={"type": "health"}),
    MonitoredService("generate-report", "Report Generator", check_body={"type": "health"}),
    MonitoredService("analytics-api", "Analytics API"),
]

# System functions are always monitored, whatever the client connections
SYSTEM_SERVICES = frozenset({"send-2fa-code", "ai-marketing", "generate-report", "analytics-api"})

PLATFORM_SERVICES: Dict[Platform, str] = {
    s.platform: s.name for s in SERVICE_CATALOG if s.platform is not None
}


def service_for_platform(platform) -> Optional[str]:
    try:
        return PLATFORM_SERVICES.get(Platform(platform))
    except ValueError:
        return None


def get_service(name: str) -> Optional[MonitoredService]:
    return next((s for s in SERVICE_CATALOG if s.name == name), None)
