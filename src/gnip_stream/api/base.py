"""
API Client Base
===============

Shared request handling for the request/response API clients.

Design Rules:
    - Basic auth on every request
    - Non-2xx responses raise ProtocolError
    - Transport failures raise TransportError
    - Undecodable bodies raise ContentError
    - Response bodies decode with the precision-preserving JSON loader
"""

import logging
from typing import Any, Optional

import httpx

from gnip_stream.config import ApiConfig
from gnip_stream.errors import ConfigurationError, ContentError, ProtocolError, TransportError
from gnip_stream.stream.parser import loads


logger = logging.getLogger(__name__)


class ApiClient:
    """
    Base class for the search, rules and usage clients.

    Attributes:
        config: Endpoint configuration
        request_count: Requests sent
        error_count: Requests that failed
    """

    def __init__(
        self,
        config: ApiConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize API client.

        Args:
            config: Endpoint configuration
            http_client: Client to issue requests with. When omitted, one is
                created and closed by aclose().

        Raises:
            ConfigurationError: If the endpoint URL is missing
        """
        if not config.url:
            raise ConfigurationError(f"{type(self).__name__} requires an endpoint url")

        self.config = config
        self.request_count: int = 0
        self.error_count: int = 0

        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=config.timeout_seconds,
        )

    @property
    def headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.config.user_agent:
            headers["User-Agent"] = self.config.user_agent
        return headers

    async def _request(
        self,
        method: str,
        url: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Send one request and decode its JSON body.

        Returns:
            Decoded body, or None for an empty body
        """
        url = url or self.config.url
        self.request_count += 1
        try:
            response = await self._http_client.request(
                method,
                url,
                headers=self.headers,
                auth=(self.config.user, self.config.password),
                **kwargs,
            )
        except httpx.HTTPError as e:
            self.error_count += 1
            logger.error(f"{method} {url} failed: {e}")
            raise TransportError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            self.error_count += 1
            logger.error(f"{method} {url} returned {response.status_code}")
            raise ProtocolError(response.status_code, response.reason_phrase)

        logger.debug(f"{method} {url} -> {response.status_code}")
        if not response.content:
            return None
        try:
            return loads(response.content)
        except ValueError as e:
            self.error_count += 1
            raise ContentError(f"Malformed response from {url}: {e}", response.content) from e

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    def get_metrics(self) -> dict:
        return {
            "request_count": self.request_count,
            "error_count": self.error_count,
        }
