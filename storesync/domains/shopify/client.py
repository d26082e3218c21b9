from typing import Dict, Optional, Union

import httpx

from storesync.core.settings import Settings, settings
from storesync.shared.exceptions import (
    ConfigurationError,
    UpstreamError,
    UpstreamRateLimitError,
    UpstreamResponseError,
)

from .types import QueryParams, ShopifyPage, ShopifyResource


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class ShopifyClient:
    """Read-only client for the Shopify REST Admin API list endpoints."""

    def __init__(
        self,
        store_url: Optional[str],
        access_token: Optional[str],
        api_version: str = "2024-01",
        timeout: float = 30.0,
    ):
        if not store_url or not access_token:
            raise ConfigurationError(
                "SHOPIFY_STORE_URL and SHOPIFY_ACCESS_TOKEN must be set"
            )

        host = store_url.strip().removeprefix("https://").removeprefix("http://")
        self.store_domain = host.rstrip("/")
        self.access_token = access_token
        self.base_url = f"https://{self.store_domain}/admin/api/{api_version}"
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "ShopifyClient":
        return cls(
            store_url=config.SHOPIFY_STORE_URL,
            access_token=config.SHOPIFY_ACCESS_TOKEN,
            api_version=config.SHOPIFY_API_VERSION,
            timeout=config.SHOPIFY_REQUEST_TIMEOUT,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Accept": "application/json",
        }

    async def list_page(
        self, resource: Union[ShopifyResource, str], params: QueryParams
    ) -> ShopifyPage:
        """
        Fetch one page of a resource list endpoint.

        Args:
            resource: Collection to list
            params: Query parameters (limit, status, page_info)

        Returns:
            ShopifyPage with the records and the next-page cursor, if any

        Raises:
            UpstreamRateLimitError: On 429, carrying the Retry-After hint
            UpstreamError: For other error statuses and transport failures
            UpstreamResponseError: When the body lacks the resource array
        """
        name = resource.value if isinstance(resource, ShopifyResource) else resource
        url = f"{self.base_url}/{name}.json"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    url,
                    headers=self._headers(),
                    params=params,
                    timeout=self.timeout,
                )
        except httpx.RequestError as e:
            raise UpstreamError(None, f"Shopify request error for {name}: {str(e)}")

        if response.status_code == 429:
            raise UpstreamRateLimitError(
                _parse_retry_after(response.headers.get("Retry-After")),
                f"Shopify rate limit hit while listing {name}",
            )

        if response.status_code >= 400:
            # keep error bodies short in logs
            body = (response.text or "")[:500]
            raise UpstreamError(
                response.status_code,
                f"Shopify {name} request failed: {response.status_code} {body}",
            )

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamResponseError(f"Shopify {name} response is not JSON")

        items = payload.get(name) if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise UpstreamResponseError(
                f"Unexpected response format from Shopify {name} endpoint"
            )

        next_link = response.links.get("next", {}).get("url")
        next_page_info = (
            httpx.URL(next_link).params.get("page_info") if next_link else None
        )

        return ShopifyPage(items=items, next_page_info=next_page_info)
