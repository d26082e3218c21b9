"""Shopify Admin API integration.

This module reads the store's collections from the Shopify REST Admin API:
- Cursor-paginated list endpoints for orders, products and customers
- Rate-limit (429) and error reporting consumed by the sync fetcher
"""

from .client import ShopifyClient
from .types import ShopifyPage, ShopifyResource

__all__ = ["ShopifyClient", "ShopifyPage", "ShopifyResource"]
