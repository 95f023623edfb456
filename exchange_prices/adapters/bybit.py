"""
Bybit Spot adapter - Public API v5.

Endpoints used:
- /v5/market/instruments-info?category=spot - Market list
- /v5/market/kline?category=spot - Kline data, newest first

Kline layout: [start time ms, open, high, low, close, volume, turnover].
"""

import logging
from typing import Any

from exchange_prices.adapters.base import ExchangeAdapter
from exchange_prices.exceptions import FetchError
from exchange_prices.models import RawCandle


logger = logging.getLogger(__name__)


class BybitAdapter(ExchangeAdapter):
    """Bybit spot market data (symbols like BTCUSDT)."""

    BASE_URL = "https://api.bybit.com"

    INTERVALS = {
        1: "1",
        3: "3",
        5: "5",
        15: "15",
        30: "30",
        60: "60",
    }
    MAX_CANDLES = 1000

    @property
    def name(self) -> str:
        return "bybit"

    def _result(self, data: dict[str, Any]) -> dict[str, Any]:
        """Unwrap the v5 envelope, raising on a non-zero retCode."""
        if data.get("retCode") != 0:
            raise FetchError(
                message=f"Bybit error {data.get('retCode')}: {data.get('retMsg')}",
                source_name=self.name,
            )
        return data["result"]

    async def _load_market_symbols(self, timeout: int) -> list[str]:
        data = await self._request(
            "/v5/market/instruments-info",
            params={"category": "spot"},
            timeout=timeout,
        )
        return [
            market["symbol"]
            for market in self._result(data)["list"]
            if market["status"].upper() == "TRADING"
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
            "category": "spot",
            "symbol": symbol,
            "interval": self.INTERVALS[timeframe],
            "start": first * 1000,
            "end": last * 1000,
            "limit": count,
        }
        data = await self._request("/v5/market/kline", params=params, timeout=timeout)
        return [
            RawCandle(
                timestamp=int(kline[0]) // 1000,
                open=kline[1],
                high=kline[2],
                low=kline[3],
                close=kline[4],
                volume=kline[5],
                quote_volume=kline[6],
            )
            for kline in self._result(data)["list"]
        ]
