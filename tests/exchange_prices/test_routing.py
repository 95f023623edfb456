"""
Gateway Routing and Transport Tests.

============================================================
PURPOSE
============================================================
Per-host route rotation and request building, without network access.

============================================================
"""

import asyncio
from unittest.mock import MagicMock

import aiohttp
import pytest

from exchange_prices.exceptions import FetchError, RateLimitError
from exchange_prices.routing import RoutingMode, RoutingState
from exchange_prices.transport import GATEWAY_VALIDATION_HEADER, HttpTransport


BINANCE_URL = "https://api.binance.com/api/v3/klines"
OKX_URL = "https://www.okx.com/api/v5/market/history-candles"


# ============================================================
# ROUTING STATE
# ============================================================

class TestRoutingState:
    """Tests for RoutingState."""

    def test_disabled_by_default(self):
        routing = RoutingState()
        assert not routing.enabled
        assert routing.select_route(BINANCE_URL) is None

    def test_single_route_always_used(self):
        routing = RoutingState(["http://gw1/"])
        assert routing.routes == ["http://gw1"]
        assert [routing.select_route(BINANCE_URL) for _ in range(3)] == ["http://gw1"] * 3

    def test_round_robin_per_host(self):
        routing = RoutingState(["http://gw1", "http://gw2", "http://gw3"])

        binance = [routing.select_route(BINANCE_URL) for _ in range(4)]
        okx = routing.select_route(OKX_URL)

        assert binance == ["http://gw1", "http://gw2", "http://gw3", "http://gw1"]
        assert okx == "http://gw1"

    def test_random_never_repeats_route(self):
        routing = RoutingState(["http://gw1", "http://gw2"], mode=RoutingMode.RANDOM)

        routes = [routing.select_route(BINANCE_URL) for _ in range(6)]

        assert routes[0] == "http://gw1"
        assert all(a != b for a, b in zip(routes, routes[1:]))

    def test_use_current_server_adds_direct_route(self):
        routing = RoutingState()
        routing.configure(["http://gw1"], use_current_server=True)

        assert routing.routes == [None, "http://gw1"]
        assert routing.select_route(BINANCE_URL) is None
        assert routing.select_route(BINANCE_URL) == "http://gw1"

    def test_string_url_accepted(self):
        routing = RoutingState()
        routing.configure("http://gw1", validation_key="secret", mode="random")

        assert routing.routes == ["http://gw1"]
        assert routing.validation_key == "secret"
        assert routing.mode == RoutingMode.RANDOM

    def test_clear(self):
        routing = RoutingState(["http://gw1", "http://gw2"], validation_key="secret")
        routing.select_route(BINANCE_URL)

        routing.clear()

        assert not routing.enabled
        assert routing.validation_key is None
        assert routing.select_route(BINANCE_URL) is None

    def test_empty_configure_clears(self):
        routing = RoutingState(["http://gw1"])
        routing.configure([])
        assert not routing.enabled


# ============================================================
# TRANSPORT
# ============================================================

class FakeResponse:
    """Minimal stand-in for aiohttp's response context manager."""

    def __init__(self, status=200, payload=None, text="", headers=None):
        self.status = status
        self._payload = payload
        self._text = text
        self.headers = headers or {}

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


@pytest.fixture
def session():
    session = MagicMock()
    session.closed = False
    return session


class TestHttpTransport:
    """Tests for HttpTransport."""

    @pytest.mark.asyncio
    async def test_direct_request_with_params(self, session):
        session.get.return_value = FakeResponse(payload={"ok": True})
        transport = HttpTransport(session=session)

        data = await transport.request(BINANCE_URL, params={"symbol": "BTCUSDT", "limit": 5})

        assert data == {"ok": True}
        url = session.get.call_args.args[0]
        assert url.startswith(BINANCE_URL)
        assert "symbol=BTCUSDT" in url
        assert "limit=5" in url

    @pytest.mark.asyncio
    async def test_routed_request(self, session):
        session.get.return_value = FakeResponse(payload=[])
        routing = RoutingState(["http://gw1"], validation_key="secret")
        transport = HttpTransport(routing=routing, session=session)

        await transport.request(BINANCE_URL, params={"symbol": "BTCUSDT"})

        url = session.get.call_args.args[0]
        headers = session.get.call_args.kwargs["headers"]
        assert url.startswith("http://gw1/gateway?url=https%3A%2F%2Fapi.binance.com")
        assert "symbol%3DBTCUSDT" in url
        assert headers[GATEWAY_VALIDATION_HEADER] == "secret"

    @pytest.mark.asyncio
    async def test_rate_limited(self, session):
        session.get.return_value = FakeResponse(status=429, headers={"Retry-After": "7"})
        transport = HttpTransport(session=session)

        with pytest.raises(RateLimitError) as exc_info:
            await transport.request(BINANCE_URL, source_name="binance")

        assert exc_info.value.retry_after_seconds == 7
        assert exc_info.value.is_rate_limited()
        assert exc_info.value.source_name == "binance"

    @pytest.mark.asyncio
    async def test_http_error(self, session):
        session.get.return_value = FakeResponse(status=503, text="down")
        transport = HttpTransport(session=session)

        with pytest.raises(FetchError) as exc_info:
            await transport.request(BINANCE_URL)

        assert exc_info.value.status_code == 503
        assert exc_info.value.is_server_error()
        assert exc_info.value.response_body == "down"

    @pytest.mark.asyncio
    async def test_client_error_becomes_fetch_error(self, session):
        session.get.side_effect = aiohttp.ClientConnectionError("refused")
        transport = HttpTransport(session=session)

        with pytest.raises(FetchError, match="Connection error"):
            await transport.request(BINANCE_URL)

    @pytest.mark.asyncio
    async def test_invalid_json_becomes_fetch_error(self, session):
        session.get.return_value = FakeResponse(payload=ValueError("bad json"))
        transport = HttpTransport(session=session)

        with pytest.raises(FetchError, match="Invalid JSON"):
            await transport.request(BINANCE_URL)

    @pytest.mark.asyncio
    async def test_timeout_becomes_fetch_error(self, session):
        session.get.side_effect = asyncio.TimeoutError()
        transport = HttpTransport(session=session)

        with pytest.raises(FetchError, match="timed out"):
            await transport.request(BINANCE_URL, timeout=10)

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self, session):
        transport = HttpTransport(session=session)
        await transport.close()
        session.close.assert_not_called()
