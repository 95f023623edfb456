"""
Gateway Routing - Optional rotation of outbound requests through gateways.

A gateway is a relay that fetches `url` on our behalf
(`{gateway}/gateway?url=...`). Spreading requests for the same exchange
host over several gateways keeps each of them under the exchange's
per-IP rate limits.

Assignment is per destination host: the first request to a host goes
through the first route, later ones rotate (round robin or random).
A `None` route means "send directly from this server".
"""

import logging
import random
from enum import Enum
from typing import Iterable, Optional, Union
from urllib.parse import urlsplit


logger = logging.getLogger(__name__)


class RoutingMode(Enum):
    """How consecutive requests to one host pick their route."""
    ROUND_ROBIN = "round_robin"
    RANDOM = "random"


def _rotated_index(index: int, length: int) -> int:
    return (index + 1) % length


def _random_index(length: int, current_index: int) -> int:
    index = random.randrange(length)
    if index == current_index:
        index = _rotated_index(index, length)
    return index


class RoutingState:
    """
    Gateway list plus the per-host assignment map.

    Owned by one PriceAggregator; configure() and clear() give it an
    explicit lifecycle.
    """

    def __init__(
        self,
        routes: Optional[Iterable[Optional[str]]] = None,
        validation_key: Optional[str] = None,
        mode: Union[RoutingMode, str] = RoutingMode.ROUND_ROBIN,
    ) -> None:
        self._routes: Optional[list[Optional[str]]] = None
        self._validation_key: Optional[str] = None
        self._mode = RoutingMode(mode)
        self._assignments: dict[str, int] = {}
        if routes is not None:
            self.configure(routes, validation_key, mode=mode)

    @property
    def enabled(self) -> bool:
        return bool(self._routes)

    @property
    def routes(self) -> list[Optional[str]]:
        return list(self._routes or [])

    @property
    def validation_key(self) -> Optional[str]:
        return self._validation_key

    @property
    def mode(self) -> RoutingMode:
        return self._mode

    def configure(
        self,
        urls: Union[str, Iterable[str], None],
        validation_key: Optional[str] = None,
        use_current_server: bool = False,
        mode: Union[RoutingMode, str, None] = None,
    ) -> None:
        """
        Set the gateway list.

        Args:
            urls: Gateway base url or list of urls; empty clears routing
            validation_key: Shared key sent as x-gateway-validation
            use_current_server: Also route some requests directly
            mode: Rotation mode, unchanged when None
        """
        if mode is not None:
            self._mode = RoutingMode(mode)
        if not urls:
            self.clear()
            return
        if isinstance(urls, str):
            urls = [urls]
        routes: list[Optional[str]] = [url.rstrip("/") for url in urls if url]
        if not routes:
            self.clear()
            return
        if use_current_server:
            routes.insert(0, None)

        self._routes = routes
        self._validation_key = validation_key
        self._assignments = {}
        logger.info(f"Gateway routing enabled with {len(routes)} routes ({self._mode.value})")

    def clear(self) -> None:
        """Disable routing and forget host assignments."""
        if self._routes:
            logger.info("Gateway routing disabled")
        self._routes = None
        self._validation_key = None
        self._assignments = {}

    def select_route(self, url: str) -> Optional[str]:
        """
        Pick the gateway for a request.

        Returns:
            Gateway base url, or None to send the request directly
        """
        if not self._routes:
            return None
        if len(self._routes) == 1:
            return self._routes[0]

        host = urlsplit(url).netloc
        if host not in self._assignments:
            self._assignments[host] = 0
            return self._routes[0]

        current = self._assignments[host]
        if self._mode == RoutingMode.RANDOM:
            index = _random_index(len(self._routes), current)
        else:
            index = _rotated_index(current, len(self._routes))
        self._assignments[host] = index
        return self._routes[index]

    def __repr__(self) -> str:
        return f"<RoutingState(routes={len(self._routes or [])}, mode={self._mode.value})>"
