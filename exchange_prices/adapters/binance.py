"""
Binance Spot adapter - Public API.

Endpoints used:
- /api/v3/exchangeInfo - Market list
- /api/v3/klines - Kline/candlestick data

Kline layout: [open time ms, open, high, low, close, volume, close time,
quote asset volume, trades, ...]. Binance has no closed-candle flag.
"""

import logging

from exchange_prices.adapters.base import ExchangeAdapter
from exchange_prices.models import RawCandle


logger = logging.getLogger(__name__)


class BinanceAdapter(ExchangeAdapter):
    """Binance spot market data (symbols like BTCUSDT)."""

    BASE_URL = "https://api.binance.com"

    INTERVALS = {
        1: "1m",
        3: "3m",
        5: "5m",
        15: "15m",
        30: "30m",
        60: "1h",
    }
    MAX_CANDLES = 1000

    @property
    def name(self) -> str:
        return "binance"

    async def _load_market_symbols(self, timeout: int) -> list[str]:
        data = await self._request("/api/v3/exchangeInfo", timeout=timeout)
        return [
            market["symbol"]
            for market in data["symbols"]
            if market["status"] == "TRADING"
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
            "symbol": symbol,
            "interval": self.INTERVALS[timeframe],
            "startTime": first * 1000,
            "endTime": last * 1000,
            "limit": count,
        }
        klines = await self._request("/api/v3/klines", params=params, timeout=timeout)
        return [
            RawCandle(
                timestamp=int(kline[0]) // 1000,
                open=kline[1],
                high=kline[2],
                low=kline[3],
                close=kline[4],
                volume=kline[5],
                quote_volume=kline[7],
            )
            for kline in klines
        ]
