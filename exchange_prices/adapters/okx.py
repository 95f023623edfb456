"""
OKX Spot adapter - Public API v5.

Endpoints used:
- /api/v5/public/instruments?instType=SPOT - Market list
- /api/v5/market/history-candles - Candles, newest first

Candle layout: [ts ms, open, high, low, close, vol, volCcy, volCcyQuote,
confirm]. confirm is "1" once the candle has closed.

Paging: `after` returns candles older than the given ts, `before` newer
ones, both exclusive.
"""

import logging
from typing import Any

from exchange_prices.adapters.base import ExchangeAdapter
from exchange_prices.exceptions import FetchError
from exchange_prices.models import RawCandle
from exchange_prices.symbols import SeparatorFormatter, SymbolFormatter


logger = logging.getLogger(__name__)


class OKXAdapter(ExchangeAdapter):
    """OKX spot market data (instIds like BTC-USDT)."""

    BASE_URL = "https://www.okx.com"

    # OKX uses upper case for hour bars
    INTERVALS = {
        1: "1m",
        3: "3m",
        5: "5m",
        15: "15m",
        30: "30m",
        60: "1H",
    }
    MAX_CANDLES = 100

    @property
    def name(self) -> str:
        return "okx"

    def default_formatter(self) -> SymbolFormatter:
        return SeparatorFormatter("-")

    def _data(self, response: dict[str, Any]) -> list[Any]:
        if str(response.get("code")) != "0":
            raise FetchError(
                message=f"OKX error {response.get('code')}: {response.get('msg')}",
                source_name=self.name,
            )
        return response["data"]

    async def _load_market_symbols(self, timeout: int) -> list[str]:
        response = await self._request(
            "/api/v5/public/instruments",
            params={"instType": "SPOT"},
            timeout=timeout,
        )
        return [
            market["instId"]
            for market in self._data(response)
            if market["state"].upper() == "LIVE"
        ]

    async def _fetch_candles_page(
        self,
        symbol: str,
        start: int,
        timeframe: int,
        count: int,
        timeout: int,
    ) -> list[RawCandle]:
        first, last = self._window(start, timeframe, count)
        params = {
            "instId": symbol,
            "bar": self.INTERVALS[timeframe],
            "after": (last + 1) * 1000,
            "before": first * 1000 - 1,
            "limit": count,
        }
        response = await self._request("/api/v5/market/history-candles", params=params, timeout=timeout)
        return [
            RawCandle(
                timestamp=int(candle[0]) // 1000,
                open=candle[1],
                high=candle[2],
                low=candle[3],
                close=candle[4],
                volume=candle[5],
                quote_volume=candle[7],
                completed=str(candle[8]) == "1",
            )
            for candle in self._data(response)
        ]
