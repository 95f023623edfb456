"""
Coinbase Exchange adapter - Public REST API.

Endpoints used:
- /products - Market list
- /products/{id}/candles - Up to 300 candles, newest first

Candle layout: [time s, low, high, open, close, volume]. There is no
quote volume, so it is approximated as volume * mean(open, high, low,
close), and no closed-candle flag.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from exchange_prices.adapters.base import ExchangeAdapter
from exchange_prices.models import RawCandle
from exchange_prices.price_utils import to_decimal
from exchange_prices.symbols import SeparatorFormatter, SymbolFormatter


logger = logging.getLogger(__name__)


def _isoformat(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class CoinbaseAdapter(ExchangeAdapter):
    """Coinbase spot market data (product ids like BTC-USD)."""

    BASE_URL = "https://api.exchange.coinbase.com"

    # granularity in seconds
    INTERVALS = {
        1: "60",
        5: "300",
        15: "900",
        60: "3600",
    }
    MAX_CANDLES = 300

    @property
    def name(self) -> str:
        return "coinbase"

    def default_formatter(self) -> SymbolFormatter:
        return SeparatorFormatter("-")

    async def _load_market_symbols(self, timeout: int) -> list[str]:
        products = await self._request("/products", timeout=timeout)
        return [
            product["id"]
            for product in products
            if product["status"].upper() == "ONLINE"
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
            "granularity": self.INTERVALS[timeframe],
            "start": _isoformat(first),
            "end": _isoformat(last),
        }
        klines = await self._request(f"/products/{symbol}/candles", params=params, timeout=timeout)

        candles = []
        for kline in klines:
            low, high, open_, close = (to_decimal(value) for value in kline[1:5])
            average = (open_ + high + low + close) / Decimal(4)
            candles.append(RawCandle(
                timestamp=int(kline[0]),
                open=open_,
                high=high,
                low=low,
                close=close,
                volume=kline[5],
                quote_volume=str(to_decimal(kline[5]) * average),
            ))
        return candles
