"""Shopify API type definitions."""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

# Shopify caps list endpoints at 250 records per page
MAX_PAGE_SIZE = 250

# Raw upstream record as decoded from JSON
ShopifyRecord = Dict[str, Any]

QueryParams = Dict[str, Union[str, int]]


class ShopifyResource(str, Enum):
    """Collections pulled from the store."""

    ORDERS = "orders"
    PRODUCTS = "products"
    CUSTOMERS = "customers"


class ShopifyPage(BaseModel):
    """One page of a list endpoint."""

    items: List[ShopifyRecord] = Field(
        default_factory=list, description="Records in upstream order"
    )
    next_page_info: Optional[str] = Field(
        None, description="Cursor for the next page, absent on the last page"
    )
