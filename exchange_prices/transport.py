"""
HTTP Transport - Shared aiohttp session for all exchange adapters.

One pooled keep-alive session serves every exchange. Timeouts apply per
request. When a RoutingState is enabled, requests are relayed through the
selected gateway.
"""

import asyncio
import logging
import time
from typing import Any, Optional
from urllib.parse import quote

import aiohttp
from yarl import URL

from exchange_prices.exceptions import FetchError, RateLimitError
from exchange_prices.routing import RoutingState


logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_MS = 3000
SLOW_REQUEST_MS = 1000
GATEWAY_VALIDATION_HEADER = "x-gateway-validation"


class HttpTransport:
    """
    Outbound request capability: request(url, params, timeout) -> JSON.

    Raises FetchError (or RateLimitError) for every failure, so callers
    can treat all transport problems as one retryable category.
    """

    def __init__(
        self,
        routing: Optional[RoutingState] = None,
        connection_limit: int = 50,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._routing = routing if routing is not None else RoutingState()
        self._connection_limit = connection_limit
        self._session = session
        self._owns_session = session is None

    @property
    def routing(self) -> RoutingState:
        return self._routing

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self._connection_limit,
                keepalive_timeout=30,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "User-Agent": "exchange-prices/1.0",
        }

    def _route(self, url: str, headers: dict[str, str]) -> tuple[str, Optional[str]]:
        gateway = self._routing.select_route(url)
        if gateway is None:
            return url, None
        if self._routing.validation_key:
            headers[GATEWAY_VALIDATION_HEADER] = self._routing.validation_key
        return f"{gateway}/gateway?url={quote(url, safe='')}", gateway

    async def request(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        timeout: int = DEFAULT_TIMEOUT_MS,
        source_name: Optional[str] = None,
    ) -> Any:
        """
        GET `url` and decode the JSON body.

        Args:
            url: Exchange endpoint
            params: Query parameters
            timeout: Request timeout in milliseconds
            source_name: Exchange name for error reporting

        Raises:
            RateLimitError: On HTTP 429
            FetchError: On any other HTTP, network, timeout or decoding error
        """
        if params:
            url = str(URL(url).with_query({k: str(v) for k, v in params.items()}))

        headers: dict[str, str] = {}
        request_url, gateway = self._route(url, headers)
        session = await self._get_session()

        start_time = time.monotonic()
        try:
            async with session.get(
                request_url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout / 1000),
            ) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        source_name=source_name,
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                        request_url=url,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        source_name=source_name,
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                data = await response.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise FetchError(
                message=f"Request timed out after {timeout}ms",
                source_name=source_name,
                request_url=url,
                original_error=e,
                context={"gateway": gateway},
            )
        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                source_name=source_name,
                request_url=url,
                original_error=e,
                context={"gateway": gateway},
            )
        except ValueError as e:
            raise FetchError(
                message=f"Invalid JSON response: {e}",
                source_name=source_name,
                request_url=url,
                original_error=e,
            )

        elapsed_ms = (time.monotonic() - start_time) * 1000
        if elapsed_ms > SLOW_REQUEST_MS:
            logger.debug(
                f"Request to {url} took {elapsed_ms:.0f}ms. Gateway: {gateway or 'no'}"
            )
        return data

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
