"""Platform adapters for the analytics engine"""

from app.connectors.base import BasePlatformAdapter
from app.connectors.metrics import (
    Platform,
    AdsMetrics,
    CommerceMetrics,
    AnalyticsMetrics,
    NormalizedMetrics,
    FetchError,
)
from app.connectors.registry import ADAPTERS, SERVICE_CATALOG, fetch, get_adapter

__all__ = [
    "BasePlatformAdapter",
    "Platform",
    "AdsMetrics",
    "CommerceMetrics",
    "AnalyticsMetrics",
    "NormalizedMetrics",
    "FetchError",
    "ADAPTERS",
    "SERVICE_CATALOG",
    "fetch",
    "get_adapter",
]
