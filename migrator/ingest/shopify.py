"""Shopify Admin API client."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import httpx

from migrator.ingest.models import Customer, Metaobject
from migrator.utils.cache import CacheStore
from migrator.utils.rate_limit import RateLimitedExecutor

logger = logging.getLogger(__name__)

API_VERSION = "2024-10"
PAGE_LIMIT = 250
CUSTOMERS_CACHE_KEY = "shopify-customers-with-metafields"
NEXT_PAGE_RE = re.compile(r'<[^>]*page_info=([^&>]+)[^>]*>;\s*rel="next"')

METAOBJECTS_QUERY = """
query Metaobjects($type: String!, $first: Int!) {
  metaobjects(type: $type, first: $first) {
    edges { node { id type handle createdAt updatedAt fields { key value type } } }
  }
}
"""

ALL_METAOBJECTS_QUERY = """
query Metaobjects($first: Int!) {
  metaobjects(first: $first) {
    edges { node { id type handle createdAt updatedAt fields { key value type } } }
  }
}
"""


class ShopifyAPIError(RuntimeError):
    """Raised when a GraphQL response carries ``errors``."""


def parse_next_page_info(link_header: str | None) -> str | None:
    if not link_header:
        return None
    match = NEXT_PAGE_RE.search(link_header)
    return match.group(1) if match else None


class ShopifyAdminClient:
    def __init__(
        self,
        store_domain: str,
        access_token: str,
        executor: RateLimitedExecutor,
        *,
        cache: CacheStore | None = None,
        session: httpx.AsyncClient | None = None,
        rate_limit_cooldown: float = 2.0,
    ) -> None:
        self.base_url = f"https://{store_domain}/admin/api/{API_VERSION}"
        self.executor = executor
        self.cache = cache
        self.rate_limit_cooldown = rate_limit_cooldown
        self._session = session or httpx.AsyncClient(
            timeout=30.0,
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
            },
        )

    async def close(self) -> None:
        await self._session.aclose()

    async def fetch_all_customers(self) -> list[Customer]:
        logger.info("Fetching all customers")
        customers: list[Customer] = []
        page_info: str | None = None
        page = 0
        while True:
            page += 1
            batch, page_info = await self.executor.execute(
                lambda cursor=page_info: self._fetch_customers_page(cursor),
                f"customers page {page}",
            )
            if not batch:
                break
            customers.extend(batch)
            logger.info("Fetched %s customers (total %s, page %s)", len(batch), len(customers), page)
            if not page_info:
                break
        logger.info("Fetched %s customers in total", len(customers))
        return customers

    async def _fetch_customers_page(self, page_info: str | None) -> tuple[list[Customer], str | None]:
        params: dict[str, Any] = {"limit": PAGE_LIMIT}
        if page_info:
            params["page_info"] = page_info
        response = await self._request("GET", "/customers.json", params=params)
        next_page = parse_next_page_info(response.headers.get("link"))
        if next_page:
            logger.debug("Next page_info: %s", next_page)
        return response.json().get("customers") or [], next_page

    async def fetch_customer(self, customer_id: int) -> Customer:
        async def _fetch() -> Customer:
            response = await self._request("GET", f"/customers/{customer_id}.json")
            return response.json()["customer"]

        return await self.executor.execute(_fetch, f"customer {customer_id}")

    async def fetch_customer_metafields(self, customer_id: int) -> list[dict[str, Any]]:
        async def _fetch() -> list[dict[str, Any]]:
            response = await self._request("GET", f"/customers/{customer_id}/metafields.json")
            return response.json().get("metafields") or []

        try:
            metafields = await self.executor.execute(_fetch, f"metafields for customer {customer_id}")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                logger.debug("Customer %s has no metafields", customer_id)
                return []
            raise
        logger.debug("Fetched %s metafields for customer %s", len(metafields), customer_id)
        return metafields

    async def fetch_customer_with_metafields(self, customer_id: int) -> Customer:
        customer = await self.fetch_customer(customer_id)
        metafields = await self.fetch_customer_metafields(customer_id)
        return {**customer, "metafields": metafields}

    async def fetch_all_customers_with_metafields(
        self, use_cache: bool = True, max_cache_age: float | None = None, *, refresh: bool = False
    ) -> list[Customer]:
        """Return every customer with a ``metafields`` list, using the cache when allowed.

        A cache hit makes no network calls. On a miss the full listing is
        fetched, each customer is enriched, and the result is written back to
        the cache. ``refresh`` skips the cache read but still writes the fresh
        result. A metafield failure for one customer degrades to ``[]``.
        """
        if use_cache and not refresh and self.cache is not None:
            cached = self.cache.load(CUSTOMERS_CACHE_KEY, max_cache_age)
            if cached is not None:
                logger.info("Loaded %s customers from cache", len(cached))
                return cached
            logger.info("No usable cache entry; fetching from Shopify")

        customers = await self.fetch_all_customers()
        enriched: list[Customer] = []
        for index, customer in enumerate(customers, start=1):
            logger.info("Fetching metafields for customer %s/%s", index, len(customers))
            try:
                metafields = await self.fetch_customer_metafields(customer["id"])
            except Exception as exc:
                logger.warning("Skipping metafields for customer %s: %s", customer["id"], exc)
                metafields = []
            enriched.append({**customer, "metafields": metafields})

        if use_cache and self.cache is not None:
            self.cache.save(CUSTOMERS_CACHE_KEY, enriched)
        logger.info("Fetched %s customers with metafields", len(enriched))
        return enriched

    async def fetch_metaobjects(self, type: str | None = None) -> list[Metaobject]:
        logger.info("Fetching metaobjects%s", f" of type {type}" if type else "")
        if type:
            payload = {"query": METAOBJECTS_QUERY, "variables": {"type": type, "first": PAGE_LIMIT}}
        else:
            payload = {"query": ALL_METAOBJECTS_QUERY, "variables": {"first": PAGE_LIMIT}}

        async def _fetch() -> list[Metaobject]:
            response = await self._request("POST", "/graphql.json", json=payload)
            data = response.json()
            if data.get("errors"):
                raise ShopifyAPIError(f"GraphQL errors: {data['errors']}")
            edges = ((data.get("data") or {}).get("metaobjects") or {}).get("edges") or []
            return [Metaobject.from_node(edge["node"]) for edge in edges]

        metaobjects = await self.executor.execute(_fetch, f"metaobjects ({type or 'all'})")
        logger.info("Fetched %s metaobjects", len(metaobjects))
        return metaobjects

    async def test_connection(self) -> bool:
        try:
            await self._request("GET", "/shop.json")
        except Exception as exc:
            logger.error("Shopify connection test failed: %s", exc)
            return False
        logger.info("Shopify connection test succeeded")
        return True

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._session.request(method, f"{self.base_url}{path}", **kwargs)
        if response.status_code == 429:
            logger.warning("Shopify rate limit hit; cooling down %.1fs", self.rate_limit_cooldown)
            await asyncio.sleep(self.rate_limit_cooldown)
        response.raise_for_status()
        return response
