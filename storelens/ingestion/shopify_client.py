"""
Shopify Admin REST Client

Pulls products, customers and orders for one shop with Link-header
pagination, and pushes product edits back.

Failures never propagate to the sync pipeline: a non-2xx answer or a timeout
is logged as ``UpstreamUnavailable`` and the resource reads as empty.
Transport errors are retried with exponential backoff first.
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storelens.config import get_settings
from storelens.config.settings import ShopifySettings
from storelens.exceptions import UpstreamUnavailable

logger = structlog.get_logger(__name__)

RESOURCES = ("products", "customers", "orders")


class ShopifyClient:
    """
    Async Shopify client for one shop.

    Example:
        async with ShopifyClient("acme.myshopify.com", token) as client:
            products = await client.fetch_products()
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: Optional[str],
        config: Optional[ShopifySettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_wait_seconds: float = 0.5,
    ):
        self.config = config or get_settings().shopify
        self.shop_domain = shop_domain
        self.base_url = f"https://{shop_domain}/admin/api/{self.config.api_version}"
        self._retry_wait_seconds = retry_wait_seconds

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.config.request_timeout_seconds,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            headers={
                "X-Shopify-Access-Token": access_token or "",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client"""
        await self.client.aclose()

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send with retry on transport errors; raise UpstreamUnavailable on failure"""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_retries),
                wait=wait_exponential(multiplier=self._retry_wait_seconds, max=10),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(
                f"Shopify request timed out: {method} {url}", shop_domain=self.shop_domain
            ) from e
        except httpx.TransportError as e:
            raise UpstreamUnavailable(
                f"Shopify unreachable: {method} {url}: {e}", shop_domain=self.shop_domain
            ) from e

        if response.is_error:
            raise UpstreamUnavailable(
                f"Shopify answered {response.status_code} for {method} {url}",
                shop_domain=self.shop_domain,
                status_code=response.status_code,
            )
        return response

    async def fetch_all(self, resource: str) -> List[Dict[str, Any]]:
        """
        Every record of ``resource`` across pages.

        Returns an empty list when any page fails; a partial listing is
        never returned.
        """
        if resource not in RESOURCES:
            raise ValueError(f"Unknown Shopify resource: {resource}")

        records: List[Dict[str, Any]] = []
        url: Optional[str] = f"{resource}.json"
        params: Optional[Dict[str, Any]] = {"limit": self.config.page_limit}
        pages = 0

        try:
            while url and pages < self.config.max_pages:
                response = await self._request("GET", url, params=params)
                records.extend(response.json().get(resource) or [])
                pages += 1
                # The next link already carries limit and page_info
                url = response.links.get("next", {}).get("url")
                params = None
        except (UpstreamUnavailable, ValueError) as e:
            logger.warning(
                "Shopify fetch failed",
                shop_domain=self.shop_domain,
                resource=resource,
                error=str(e),
            )
            return []

        if url:
            logger.warning(
                "Shopify pagination truncated",
                shop_domain=self.shop_domain,
                resource=resource,
                max_pages=self.config.max_pages,
            )
        logger.info(
            "Shopify fetch complete",
            shop_domain=self.shop_domain,
            resource=resource,
            records=len(records),
            pages=pages,
        )
        return records

    async def fetch_products(self) -> List[Dict[str, Any]]:
        return await self.fetch_all("products")

    async def fetch_customers(self) -> List[Dict[str, Any]]:
        return await self.fetch_all("customers")

    async def fetch_orders(self) -> List[Dict[str, Any]]:
        return await self.fetch_all("orders")

    async def update_product(self, external_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        PUT a product patch (as built by ``to_external_patch``).

        Returns the updated Shopify product, or None when the push failed.
        """
        body = {"product": {**patch.get("product", {}), "id": int(external_id) if str(external_id).isdigit() else external_id}}
        try:
            response = await self._request("PUT", f"products/{external_id}.json", json=body)
        except UpstreamUnavailable as e:
            logger.warning(
                "Shopify product push failed",
                shop_domain=self.shop_domain,
                external_id=external_id,
                error=str(e),
            )
            return None
        return response.json().get("product")
