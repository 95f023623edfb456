"""
Gate.io Spot adapter - Public API v4.

Endpoints used:
- /api/v4/spot/currency_pairs - Market list
- /api/v4/spot/candlesticks - Candles, oldest first

Candle layout: [time s, quote volume, close, high, low, open, base volume,
window closed ("true"/"false")].
"""

import logging

from exchange_prices.adapters.base import ExchangeAdapter
from exchange_prices.models import RawCandle
from exchange_prices.symbols import SeparatorFormatter, SymbolFormatter


logger = logging.getLogger(__name__)


class GateAdapter(ExchangeAdapter):
    """Gate.io spot market data (currency pairs like BTC_USDT)."""

    BASE_URL = "https://api.gateio.ws"

    INTERVALS = {
        1: "1m",
        5: "5m",
        15: "15m",
        30: "30m",
        60: "1h",
    }
    MAX_CANDLES = 1000

    @property
    def name(self) -> str:
        return "gate"

    def default_formatter(self) -> SymbolFormatter:
        return SeparatorFormatter("_")

    async def _load_market_symbols(self, timeout: int) -> list[str]:
        pairs = await self._request("/api/v4/spot/currency_pairs", timeout=timeout)
        return [
            pair["id"]
            for pair in pairs
            if pair["trade_status"].upper() == "TRADABLE"
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
            "currency_pair": symbol,
            "interval": self.INTERVALS[timeframe],
            "from": first,
            "to": last,
        }
        klines = await self._request("/api/v4/spot/candlesticks", params=params, timeout=timeout)
        return [
            RawCandle(
                timestamp=int(kline[0]),
                open=kline[5],
                high=kline[3],
                low=kline[4],
                close=kline[2],
                volume=kline[6],
                quote_volume=kline[1],
                completed=len(kline) < 8 or str(kline[7]).lower() == "true",
            )
            for kline in klines
        ]
