"""
Kraken adapter - Public REST API.

Endpoints used:
- /0/public/AssetPairs - Market list (matched on altname, e.g. XBTUSD)
- /0/public/OHLC - Up to 720 candles since a timestamp

OHLC layout: [time s, open, high, low, close, vwap, volume, count].
Kraken reports no quote volume, so it is vwap * volume. `since` is
exclusive. `last` is the open time of the newest committed candle, so
only candles after it are still forming.
"""

import logging
from typing import Any

from exchange_prices.adapters.base import ExchangeAdapter
from exchange_prices.exceptions import FetchError
from exchange_prices.models import RawCandle
from exchange_prices.price_utils import to_decimal


logger = logging.getLogger(__name__)


class KrakenAdapter(ExchangeAdapter):
    """Kraken spot market data (altnames like XBTUSD)."""

    BASE_URL = "https://api.kraken.com"

    INTERVALS = {
        1: "1",
        5: "5",
        15: "15",
        30: "30",
        60: "60",
    }
    MAX_CANDLES = 720

    @property
    def name(self) -> str:
        return "kraken"

    def _result(self, response: dict[str, Any]) -> dict[str, Any]:
        errors = response.get("error") or []
        if errors:
            raise FetchError(
                message=f"Kraken error: {', '.join(errors)}",
                source_name=self.name,
            )
        return response["result"]

    async def _load_market_symbols(self, timeout: int) -> list[str]:
        response = await self._request("/0/public/AssetPairs", timeout=timeout)
        return [
            market["altname"]
            for market in self._result(response).values()
            if market.get("status", "online").lower() == "online"
        ]

    async def _fetch_candles_page(
        self,
        symbol: str,
        start: int,
        timeframe: int,
        count: int,
        timeout: int,
    ) -> list[RawCandle]:
        params = {
            "pair": symbol,
            "interval": self.INTERVALS[timeframe],
            "since": start - 1,
        }
        result = self._result(await self._request("/0/public/OHLC", params=params, timeout=timeout))

        last = int(result.get("last", 0))
        # the result is keyed by Kraken's internal pair name, not the altname
        keys = [key for key in result if key != "last"]
        if not keys:
            return []
        klines = result[keys[0]]

        candles = []
        for kline in klines:
            timestamp = int(kline[0])
            candles.append(RawCandle(
                timestamp=timestamp,
                open=kline[1],
                high=kline[2],
                low=kline[3],
                close=kline[4],
                volume=kline[6],
                quote_volume=str(to_decimal(kline[5]) * to_decimal(kline[6])),
                completed=last == 0 or timestamp <= last,
            ))
        return candles
