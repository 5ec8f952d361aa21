"""
Shopify Adapter

Storefront orders and revenue. The shopify-api function multiplexes on
``action``, so the analytics action is requested explicitly.
"""
from typing import Any, Dict

from app.connectors.base import BasePlatformAdapter
from app.connectors.metrics import CommerceMetrics, Platform


class ShopifyAdapter(BasePlatformAdapter):
    """Adapter for the shopify-api function"""

    platform = Platform.SHOPIFY
    function_name = "shopify-api"
    kind = "commerce"

    def build_request_body(self, client_id: str, start_date: str, end_date: str) -> Dict[str, Any]:
        return {"action": "analytics", "clientId": client_id, "startDate": start_date, "endDate": end_date}

    def normalize(self, payload: Dict[str, Any]) -> CommerceMetrics:
        scopes = ("summary",)
        return CommerceMetrics(
            revenue=self._pick(payload, scopes, "totalRevenue", "revenue"),
            orders=self._pick(payload, scopes, "totalOrders", "orders"),
            avg_order_value=self._pick(payload, scopes, "avgOrderValue", "averageOrderValue"),
            conversion_rate=self._pick(payload, scopes, "conversionRate"),
            sessions=self._pick(payload, scopes, "sessions"),
            raw=payload,
        )
