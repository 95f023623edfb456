"""
Exchange Adapter - Abstract interface for all exchange price sources.

Each adapter supplies two exchange-specific capabilities:
1. _load_market_symbols() - tradable native symbols
2. _fetch_candles_page() - one page of raw candles

Everything else (symbol resolution, pagination, gap filling, inversion,
self-pair shortcut) is shared here so every exchange behaves the same.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from exchange_prices.exceptions import (
    FetchError,
    MarketLoadError,
    PriceSourceError,
)
from exchange_prices.models import OHLCV, Pair, RawCandle, SymbolInfo, TradeData
from exchange_prices.normalizer import normalize_ohlcv
from exchange_prices.reconciler import reconcile, self_pair_series, unit_ohlcv
from exchange_prices.symbols import ConcatFormatter, SymbolFormatter, SymbolResolver
from exchange_prices.transport import DEFAULT_TIMEOUT_MS, HttpTransport


logger = logging.getLogger(__name__)


class ExchangeAdapter(ABC):
    """
    Abstract base class for exchange adapters.

    Subclasses set `INTERVALS` (timeframe minutes -> native interval) and
    `MAX_CANDLES` (page size) and implement the two fetch hooks.
    """

    BASE_URL = ""
    INTERVALS: dict[int, str] = {}
    MAX_CANDLES = 1000

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        formatter: Optional[SymbolFormatter] = None,
    ) -> None:
        self._transport = transport if transport is not None else HttpTransport()
        self._owns_transport = transport is None
        self._resolver = SymbolResolver(formatter or self.default_formatter(), self.name)
        self._markets_loaded_at = 0.0

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this exchange."""
        pass

    def default_formatter(self) -> SymbolFormatter:
        """Symbol spelling used by this exchange."""
        return ConcatFormatter()

    @abstractmethod
    async def _load_market_symbols(self, timeout: int) -> list[str]:
        """
        Fetch currently tradable native symbols.

        Raises:
            FetchError: If the request fails
        """
        pass

    @abstractmethod
    async def _fetch_candles_page(
        self,
        symbol: str,
        start: int,
        timeframe: int,
        count: int,
        timeout: int,
    ) -> list[RawCandle]:
        """
        Fetch at most `count` candles opening at or after `start`.

        Args:
            symbol: Native symbol
            start: First candle open time, unix seconds
            timeframe: Candle width in minutes
            count: Number of candles (<= MAX_CANDLES)
            timeout: Request timeout in milliseconds

        Returns:
            Raw candles in any order

        Raises:
            FetchError: If the request fails
        """
        pass

    # ------------------------------------------------------------
    # Markets
    # ------------------------------------------------------------

    @property
    def markets(self) -> frozenset[str]:
        return self._resolver.markets

    @property
    def markets_loaded_at(self) -> float:
        """Unix time of the last successful market load, 0 if never."""
        return self._markets_loaded_at

    def markets_stale(self, ttl_seconds: float) -> bool:
        return time.time() - self._markets_loaded_at >= ttl_seconds

    async def load_markets(self, timeout: int = DEFAULT_TIMEOUT_MS) -> None:
        """
        Reload the market list and clear the symbol cache.

        Raises:
            MarketLoadError: If the list cannot be fetched or is empty
        """
        try:
            symbols = await self._load_market_symbols(timeout)
        except PriceSourceError as e:
            raise MarketLoadError(
                message=f"Failed to load markets: {e.message}",
                source_name=self.name,
                original_error=e,
            )
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise MarketLoadError(
                message=f"Malformed markets response: {e!r}",
                source_name=self.name,
                original_error=e,
            )

        if not symbols:
            raise MarketLoadError(message="Empty market list", source_name=self.name)

        self._resolver.load(symbols)
        self._markets_loaded_at = time.time()
        logger.info(f"[{self.name}] Loaded {len(self._resolver.markets)} markets")

    def get_symbol_info(self, pair: Pair) -> Optional[SymbolInfo]:
        """Native symbol for a pair, cached until the next market load."""
        return self._resolver.resolve(pair)

    # ------------------------------------------------------------
    # Candles
    # ------------------------------------------------------------

    def supports_timeframe(self, timeframe: int) -> bool:
        return timeframe in self.INTERVALS

    def validate_timeframe(self, timeframe: int) -> str:
        """
        Native interval for a timeframe in minutes.

        Raises:
            FetchError: If the exchange has no such interval
        """
        if not self.supports_timeframe(timeframe):
            raise FetchError(
                message=f"Unsupported timeframe: {timeframe}m",
                source_name=self.name,
            )
        return self.INTERVALS[timeframe]

    async def fetch_candles(
        self,
        symbol: str,
        start: int,
        timeframe: int,
        count: int,
        timeout: int = DEFAULT_TIMEOUT_MS,
    ) -> list[RawCandle]:
        """Fetch `count` candles from `start`, paging by MAX_CANDLES."""
        self.validate_timeframe(timeframe)
        timeframe_seconds = timeframe * 60

        candles: list[RawCandle] = []
        fetched = 0
        while fetched < count:
            page_size = min(self.MAX_CANDLES, count - fetched)
            page_start = start + fetched * timeframe_seconds
            try:
                page = await self._fetch_candles_page(symbol, page_start, timeframe, page_size, timeout)
            except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
                raise FetchError(
                    message=f"Malformed candles response for {symbol}: {e!r}",
                    source_name=self.name,
                    original_error=e,
                )
            candles.extend(page)
            fetched += page_size
        return candles

    async def get_trades_data(
        self,
        pair: Pair,
        timestamp: int,
        timeframe: int,
        count: int,
        timeout: int = DEFAULT_TIMEOUT_MS,
    ) -> list[TradeData]:
        """
        Volume buckets for a pair, one per slot.

        Args:
            pair: Pair to get trades data for
            timestamp: First slot, unix seconds
            timeframe: Slot width in minutes
            count: Number of slots
            timeout: Request timeout in milliseconds

        Returns:
            Exactly `count` buckets in ascending order. Unknown markets give
            an all-gap series instead of an error.
        """
        if count < 1:
            raise ValueError("Count should be greater than 0")
        timeframe_seconds = timeframe * 60

        if pair.is_self_pair:
            return self_pair_series(timestamp, timeframe_seconds, count, self.name)

        symbol_info = self.get_symbol_info(pair)
        if symbol_info is None:
            return reconcile([], timestamp, timeframe_seconds, count, False, self.name)

        candles = await self.fetch_candles(symbol_info.symbol, timestamp, timeframe, count, timeout)
        return reconcile(
            candles,
            timestamp,
            timeframe_seconds,
            count,
            symbol_info.inversed,
            self.name,
        )

    async def get_ohlcv(
        self,
        pair: Pair,
        timestamp: int,
        timeframe: int,
        decimals: int,
        timeout: int = DEFAULT_TIMEOUT_MS,
    ) -> Optional[OHLCV]:
        """
        The candle opening exactly at `timestamp`, or None when the market
        is unknown or had no trades in that interval.
        """
        if pair.is_self_pair:
            return unit_ohlcv(decimals, self.name, timestamp)

        symbol_info = self.get_symbol_info(pair)
        if symbol_info is None:
            return None

        candles = await self.fetch_candles(symbol_info.symbol, timestamp, timeframe, 1, timeout)
        candle = next((c for c in candles if c.timestamp == timestamp), None)
        if candle is None:
            return None
        return normalize_ohlcv(candle, decimals, symbol_info.inversed, self.name)

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    async def _request(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        timeout: int = DEFAULT_TIMEOUT_MS,
    ) -> Any:
        return await self._transport.request(
            f"{self.BASE_URL}{path}",
            params=params,
            timeout=timeout,
            source_name=self.name,
        )

    @staticmethod
    def _window(start: int, timeframe: int, count: int) -> tuple[int, int]:
        """(first open time, last open time) in seconds for a page."""
        return start, start + (count - 1) * timeframe * 60

    async def close(self) -> None:
        """Close resources."""
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self) -> "ExchangeAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, markets={len(self.markets)})>"
