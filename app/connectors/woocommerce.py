"""
WooCommerce Adapter
"""
from app.connectors.shopify import ShopifyAdapter
from app.connectors.metrics import Platform


class WooCommerceAdapter(ShopifyAdapter):
    """Same summary shape as Shopify, served by the woocommerce-api function"""

    platform = Platform.WOOCOMMERCE
    function_name = "woocommerce-api"
    kind = "commerce"
