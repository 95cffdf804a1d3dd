"""
Search Client
=============

Rate-limited client for the search API.

Every request first takes a token from the rate limiter, so callers may
wait before their request is sent. By default all SearchClients in the
process share one limiter.

Example:
    async with SearchClient(settings.search) as search:
        page = await search.search("from:example", maxResults=100)
        async for result in search.iter_results("from:example"):
            print(result["id"])
"""

import logging
from typing import Any, AsyncIterator, Optional

import httpx

from gnip_stream.api.base import ApiClient
from gnip_stream.api.rate_limiter import RateLimiter, get_default_rate_limiter
from gnip_stream.config import SearchConfig


logger = logging.getLogger(__name__)


def derive_counts_url(url: str) -> str:
    """Map ".../prod.json" to ".../prod/counts.json"."""
    if url.endswith(".json"):
        return url[: -len(".json")] + "/counts.json"
    return url.rstrip("/") + "/counts.json"


class SearchClient(ApiClient):
    """
    Search API client.

    Attributes:
        rate_limiter: Limiter every request waits on
        counts_url: Endpoint used by counts()
    """

    def __init__(
        self,
        config: SearchConfig,
        rate_limiter: Optional[RateLimiter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize search client.

        Args:
            config: Search endpoint configuration
            rate_limiter: Limiter to use instead of the process-wide default
            http_client: Optional shared HTTP client
        """
        super().__init__(config, http_client)
        self.rate_limiter = rate_limiter or get_default_rate_limiter()
        self.counts_url = config.counts_url or derive_counts_url(config.url)

    async def search(self, query: str, **params: Any) -> dict:
        """
        Run one search request.

        Args:
            query: Search query
            **params: Extra query parameters (fromDate, toDate, maxResults, next)

        Returns:
            Decoded response, normally {"results": [...], "next": ...}
        """
        await self.rate_limiter.acquire()
        return await self._request("GET", params=_params(query, params))

    async def counts(self, query: str, **params: Any) -> dict:
        """Run one counts request (bucket, fromDate, toDate, next)."""
        await self.rate_limiter.acquire()
        return await self._request("GET", self.counts_url, params=_params(query, params))

    async def iter_results(self, query: str, **params: Any) -> AsyncIterator[Any]:
        """
        Yield every result, following "next" tokens across pages.

        Each page is a separate rate-limited request.
        """
        page_count = 0
        while True:
            page = await self.search(query, **params) or {}
            page_count += 1
            for result in page.get("results", ()):
                yield result

            next_token = page.get("next")
            if not next_token:
                logger.debug(f"Search finished after {page_count} page(s)")
                return
            params = {**params, "next": next_token}


def _params(query: str, params: dict) -> dict:
    merged = {"query": query}
    merged.update({key: value for key, value in params.items() if value is not None})
    return merged
