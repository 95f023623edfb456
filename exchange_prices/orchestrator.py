"""
Exchange Prices - Fetch Orchestrator.

============================================================
RESPONSIBILITY
============================================================
Drives every exchange adapter for a multi-asset request and assembles
the per-asset results.

- Splits pairs into batches
- Keeps each exchange's market list fresh
- Retries per-pair fetches, treating incomplete data as a failure
- Paces batches per exchange to stay under rate limits
- Feeds surviving series into the consensus aggregator

============================================================
CONCURRENCY
============================================================
- One task per exchange, all awaited, no cross-exchange cancellation
- Batches for one exchange run strictly in sequence
- Pairs within a batch run concurrently
- A failing exchange or pair only reduces the number of sources

============================================================
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, TypeVar, Union

from exchange_prices.adapters import ExchangeAdapter, create_adapters
from exchange_prices.assets import get_pairs
from exchange_prices.config import FetchOptions, get_config
from exchange_prices.consensus import consensus_series, consensus_snapshot
from exchange_prices.exceptions import (
    IncompleteCandleError,
    InvalidRequestError,
    InvalidTimeframeError,
    MarketLoadError,
    PriceSourceError,
    RateLimitError,
    TimestampMismatchError,
)
from exchange_prices.models import OHLCV, Pair, PriceData, TradeData
from exchange_prices.price_utils import DEFAULT_PRICE_DECIMALS
from exchange_prices.routing import RoutingMode, RoutingState
from exchange_prices.transport import HttpTransport


logger = logging.getLogger(__name__)


T = TypeVar("T")

OptionsArg = Union[FetchOptions, Mapping[str, Any], None]

MAX_TIMEFRAME_SECONDS = 3600

# waits after a 429, in seconds
RATE_LIMIT_BACKOFF_SECONDS = 1
MAX_RATE_LIMIT_WAIT_SECONDS = 10


def validate_timeframe(timeframe_seconds: int) -> int:
    """
    Timeframe in minutes.

    Raises:
        InvalidTimeframeError: If not a positive whole number of minutes up to an hour
    """
    if (
        not isinstance(timeframe_seconds, int)
        or timeframe_seconds <= 0
        or timeframe_seconds % 60
        or timeframe_seconds > MAX_TIMEFRAME_SECONDS
    ):
        raise InvalidTimeframeError(
            f"Invalid timeframe: {timeframe_seconds}s",
            timeframe=timeframe_seconds,
        )
    return timeframe_seconds // 60


def split_batches(pairs: Sequence[Pair], batch_size: int) -> list[list[Pair]]:
    """Split pairs into batches; a non-positive size means a single batch."""
    if batch_size <= 0:
        return [list(pairs)]
    return [list(pairs[i:i + batch_size]) for i in range(0, len(pairs), batch_size)]


class PriceAggregator:
    """
    Multi-exchange price fetcher.

    Owns the adapters, the shared transport and the gateway routing state.
    All public coroutines degrade to fewer sources instead of raising; only
    invalid input is reported as an exception.
    """

    def __init__(
        self,
        adapters: Optional[Sequence[ExchangeAdapter]] = None,
        options: Optional[FetchOptions] = None,
        routing: Optional[RoutingState] = None,
        transport: Optional[HttpTransport] = None,
    ) -> None:
        self.options = options if options is not None else get_config()
        self.routing = routing if routing is not None else RoutingState()
        self._owns_transport = transport is None
        self.transport = transport if transport is not None else HttpTransport(routing=self.routing)
        self.adapters = list(adapters) if adapters is not None else create_adapters(self.transport)

        self._stats = {
            "requests": 0,
            "pair_failures": 0,
            "exchange_failures": 0,
            "market_load_failures": 0,
        }

    # ------------------------------------------------------------
    # Adapters & markets
    # ------------------------------------------------------------

    def select_adapters(self, sources: Sequence[str]) -> list[ExchangeAdapter]:
        """Adapters in the allow-list, in adapter order."""
        allowed = {source.lower() for source in sources}
        return [adapter for adapter in self.adapters if adapter.name in allowed]

    async def ensure_markets_loaded(
        self,
        adapter: ExchangeAdapter,
        options: Optional[FetchOptions] = None,
    ) -> bool:
        """
        Reload the adapter's markets when they are older than the TTL.

        Returns:
            False when the exchange should be skipped for this run
        """
        options = options or self.options
        if not adapter.markets_stale(options.markets_ttl_seconds):
            return True

        last_error: Optional[MarketLoadError] = None
        for attempt in range(1, options.max_retries + 1):
            try:
                await adapter.load_markets(options.timeout)
                return True
            except MarketLoadError as e:
                last_error = e
                logger.debug(f"[{adapter.name}] Market load attempt {attempt} failed: {e.message}")

        self._stats["market_load_failures"] += 1
        logger.warning(
            f"[{adapter.name}] Skipping exchange, markets unavailable after "
            f"{options.max_retries} attempts: {last_error.message if last_error else 'unknown'}"
        )
        return False

    # ------------------------------------------------------------
    # Per-pair fetches
    # ------------------------------------------------------------

    async def _with_retries(
        self,
        adapter: ExchangeAdapter,
        pair: Pair,
        fetch: Callable[[], Awaitable[T]],
        options: FetchOptions,
    ) -> Optional[T]:
        errors: list[PriceSourceError] = []
        for attempt in range(1, options.max_retries + 1):
            self._stats["requests"] += 1
            try:
                return await fetch()
            except TimestampMismatchError as e:
                logger.warning(f"[{adapter.name}] Dropping {pair.name}: {e.message}")
                self._stats["pair_failures"] += 1
                return None
            except RateLimitError as e:
                errors.append(e)
                if attempt < options.max_retries:
                    wait_time = min(
                        e.retry_after_seconds or RATE_LIMIT_BACKOFF_SECONDS * attempt,
                        MAX_RATE_LIMIT_WAIT_SECONDS,
                    )
                    logger.warning(
                        f"[{adapter.name}] Rate limited on {pair.name}, waiting {wait_time}s "
                        f"(attempt {attempt}/{options.max_retries})"
                    )
                    await asyncio.sleep(wait_time)
            except PriceSourceError as e:
                errors.append(e)
                logger.debug(f"[{adapter.name}] {pair.name} attempt {attempt} failed: {e.message}")

        self._stats["pair_failures"] += 1
        logger.warning(
            f"[{adapter.name}] Giving up on {pair.name} after {len(errors)} attempts: "
            f"{errors[-1].message if errors else 'unknown'}"
        )
        return None

    async def fetch_pair_trades_data(
        self,
        adapter: ExchangeAdapter,
        pair: Pair,
        timestamp: int,
        timeframe: int,
        count: int,
        options: Optional[FetchOptions] = None,
    ) -> Optional[list[TradeData]]:
        """
        Trades data for one pair on one exchange, or None after exhausting retries.

        A series with a still-forming bucket counts as a failed attempt.
        """
        options = options or self.options

        async def fetch() -> list[TradeData]:
            series = await adapter.get_trades_data(pair, timestamp, timeframe, count, options.timeout)
            if not all(bucket.completed for bucket in series):
                raise IncompleteCandleError(
                    "Series contains an incomplete candle",
                    source_name=adapter.name,
                    pair_name=pair.name,
                )
            return series

        return await self._with_retries(adapter, pair, fetch, options)

    async def fetch_pair_ohlcv(
        self,
        adapter: ExchangeAdapter,
        pair: Pair,
        timestamp: int,
        timeframe: int,
        decimals: int,
        options: Optional[FetchOptions] = None,
    ) -> Optional[OHLCV]:
        """Single candle for one pair on one exchange, or None."""
        options = options or self.options

        async def fetch() -> Optional[OHLCV]:
            ohlcv = await adapter.get_ohlcv(pair, timestamp, timeframe, decimals, options.timeout)
            if ohlcv is not None and not ohlcv.completed:
                raise IncompleteCandleError(
                    "Candle is still forming",
                    source_name=adapter.name,
                    pair_name=pair.name,
                )
            return ohlcv

        return await self._with_retries(adapter, pair, fetch, options)

    # ------------------------------------------------------------
    # Per-exchange pipeline
    # ------------------------------------------------------------

    async def _run_batches(
        self,
        adapter: ExchangeAdapter,
        batches: Sequence[Sequence[Pair]],
        fetch_pair: Callable[[Pair], Awaitable[Optional[T]]],
        timeframe: int,
        options: FetchOptions,
    ) -> Optional[list[Optional[T]]]:
        try:
            if adapter.supports_timeframe(timeframe):
                available = await self.ensure_markets_loaded(adapter, options)
            else:
                logger.warning(f"[{adapter.name}] Skipping exchange, no {timeframe}m candles")
                available = False
            if not available and not any(pair.is_self_pair for batch in batches for pair in batch):
                return None

            # self-pairs need neither a market list nor a native interval
            async def run(pair: Pair) -> Optional[T]:
                if not available and not pair.is_self_pair:
                    return None
                return await fetch_pair(pair)

            results: list[Optional[T]] = []
            for index, batch in enumerate(batches):
                started = time.monotonic()
                results.extend(await asyncio.gather(*(run(pair) for pair in batch)))

                if index < len(batches) - 1:
                    elapsed_ms = (time.monotonic() - started) * 1000
                    wait_ms = max(0.0, options.batch_delay - elapsed_ms)
                    if wait_ms:
                        await asyncio.sleep(wait_ms / 1000)
            return results
        except Exception as e:
            self._stats["exchange_failures"] += 1
            logger.error(f"[{adapter.name}] Exchange pipeline failed: {e!r}")
            return None

    async def fetch_adapter_trades_data(
        self,
        adapter: ExchangeAdapter,
        batches: Sequence[Sequence[Pair]],
        timestamp: int,
        timeframe: int,
        count: int,
        options: Optional[FetchOptions] = None,
    ) -> Optional[list[Optional[list[TradeData]]]]:
        """
        Trades data for every pair on one exchange, in pair order.

        Returns:
            One entry per pair (None where the pair failed), or None when the
            whole exchange is unavailable
        """
        options = options or self.options
        return await self._run_batches(
            adapter,
            batches,
            lambda pair: self.fetch_pair_trades_data(adapter, pair, timestamp, timeframe, count, options),
            timeframe,
            options,
        )

    async def fetch_adapter_ohlcvs(
        self,
        adapter: ExchangeAdapter,
        batches: Sequence[Sequence[Pair]],
        timestamp: int,
        timeframe: int,
        decimals: int,
        options: Optional[FetchOptions] = None,
    ) -> Optional[list[Optional[OHLCV]]]:
        """Single candles for every pair on one exchange, in pair order."""
        options = options or self.options
        return await self._run_batches(
            adapter,
            batches,
            lambda pair: self.fetch_pair_ohlcv(adapter, pair, timestamp, timeframe, decimals, options),
            timeframe,
            options,
        )

    # ------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------

    def _prepare(
        self,
        assets: Sequence[str],
        base_asset: str,
        options: OptionsArg,
    ) -> tuple[FetchOptions, list[Pair], list[list[Pair]], list[ExchangeAdapter]]:
        options = self.options.merged(options)
        pairs = get_pairs(assets, base_asset)
        batches = split_batches(pairs, options.batch_size)
        return options, pairs, batches, self.select_adapters(options.sources)

    @staticmethod
    def _assemble(results: Sequence[Optional[Sequence[Optional[T]]]], size: int) -> list[list[T]]:
        return [
            [result[i] for result in results if result and result[i]]
            for i in range(size)
        ]

    async def get_trades_data(
        self,
        assets: Sequence[str],
        base_asset: str,
        timestamp: int,
        timeframe_seconds: int,
        count: int,
        options: OptionsArg = None,
    ) -> list[list[list[TradeData]]]:
        """
        Bucket series for each asset denominated in base_asset.

        Args:
            assets: Asset tickers to price
            base_asset: Denomination asset (e.g. "USD")
            timestamp: First slot, unix seconds
            timeframe_seconds: Slot width in seconds (whole minutes, max 1h)
            count: Number of slots
            options: Per-call FetchOptions overrides

        Returns:
            asset -> exchanges with data -> `count` buckets

        Raises:
            InvalidTimeframeError: If the timeframe is not supported
            InvalidRequestError: If count < 1
        """
        timeframe = validate_timeframe(timeframe_seconds)
        if count < 1:
            raise InvalidRequestError("Count should be greater than 0")
        if not assets:
            return []

        options, pairs, batches, adapters = self._prepare(assets, base_asset, options)
        results = await asyncio.gather(*(
            self.fetch_adapter_trades_data(adapter, batches, timestamp, timeframe, count, options)
            for adapter in adapters
        ))
        return self._assemble(results, len(pairs))

    async def get_price_data(
        self,
        assets: Sequence[str],
        base_asset: str,
        timestamp: int,
        timeframe_seconds: int,
        count: int,
        options: OptionsArg = None,
        decimals: int = DEFAULT_PRICE_DECIMALS,
    ) -> list[list[PriceData]]:
        """
        Consensus prices per slot.

        Returns:
            slot -> asset -> PriceData (price None where nobody traded)
        """
        trades_data = await self.get_trades_data(
            assets, base_asset, timestamp, timeframe_seconds, count, options
        )
        per_asset = [
            consensus_series(series, timestamp, timeframe_seconds, count, decimals)
            for series in trades_data
        ]
        return [[prices[slot] for prices in per_asset] for slot in range(count)]

    async def get_ohlcvs(
        self,
        assets: Sequence[str],
        base_asset: str,
        timestamp: int,
        timeframe_seconds: int,
        decimals: int = DEFAULT_PRICE_DECIMALS,
        options: OptionsArg = None,
    ) -> list[list[OHLCV]]:
        """
        Candle opening at `timestamp` for each asset.

        Returns:
            asset -> one OHLCV per exchange with data
        """
        timeframe = validate_timeframe(timeframe_seconds)
        if not assets:
            return []

        options, pairs, batches, adapters = self._prepare(assets, base_asset, options)
        results = await asyncio.gather(*(
            self.fetch_adapter_ohlcvs(adapter, batches, timestamp, timeframe, decimals, options)
            for adapter in adapters
        ))
        return self._assemble(results, len(pairs))

    async def get_prices(
        self,
        assets: Sequence[str],
        base_asset: str,
        timestamp: int,
        timeframe_seconds: int,
        decimals: int = DEFAULT_PRICE_DECIMALS,
        options: OptionsArg = None,
    ) -> list[PriceData]:
        """Snapshot consensus price per asset."""
        ohlcvs = await self.get_ohlcvs(
            assets, base_asset, timestamp, timeframe_seconds, decimals, options
        )
        return [consensus_snapshot(candles, timestamp, decimals) for candles in ohlcvs]

    # ------------------------------------------------------------
    # Gateway routing
    # ------------------------------------------------------------

    def set_gateway(
        self,
        urls: Union[str, Sequence[str], None],
        validation_key: Optional[str] = None,
        use_current_server: bool = False,
        mode: Union[RoutingMode, str] = RoutingMode.ROUND_ROBIN,
    ) -> None:
        """Route outbound requests through gateway relays."""
        self.routing.configure(urls, validation_key, use_current_server, RoutingMode(mode))

    def clear_gateway(self) -> None:
        """Send requests directly again."""
        self.routing.clear()

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Get fetch statistics."""
        return {
            **self._stats,
            "adapters": [adapter.name for adapter in self.adapters],
            "routing_enabled": self.routing.enabled,
        }

    async def close(self) -> None:
        """Close the shared transport and any adapter-owned transports."""
        for adapter in self.adapters:
            await adapter.close()
        if self._owns_transport:
            await self.transport.close()

    async def __aenter__(self) -> "PriceAggregator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


# =============================================================
# DEFAULT AGGREGATOR
# =============================================================


_default_aggregator: Optional[PriceAggregator] = None


def get_default_aggregator() -> PriceAggregator:
    """Get or create the process-wide aggregator."""
    global _default_aggregator
    if _default_aggregator is None:
        _default_aggregator = PriceAggregator()
    return _default_aggregator


async def get_trades_data(
    assets: Sequence[str],
    base_asset: str,
    timestamp: int,
    timeframe_seconds: int,
    count: int,
    options: OptionsArg = None,
) -> list[list[list[TradeData]]]:
    """Convenience wrapper around the default aggregator."""
    return await get_default_aggregator().get_trades_data(
        assets, base_asset, timestamp, timeframe_seconds, count, options
    )


async def get_price_data(
    assets: Sequence[str],
    base_asset: str,
    timestamp: int,
    timeframe_seconds: int,
    count: int,
    options: OptionsArg = None,
    decimals: int = DEFAULT_PRICE_DECIMALS,
) -> list[list[PriceData]]:
    return await get_default_aggregator().get_price_data(
        assets, base_asset, timestamp, timeframe_seconds, count, options, decimals
    )


async def get_ohlcvs(
    assets: Sequence[str],
    base_asset: str,
    timestamp: int,
    timeframe_seconds: int,
    decimals: int = DEFAULT_PRICE_DECIMALS,
    options: OptionsArg = None,
) -> list[list[OHLCV]]:
    return await get_default_aggregator().get_ohlcvs(
        assets, base_asset, timestamp, timeframe_seconds, decimals, options
    )


async def get_prices(
    assets: Sequence[str],
    base_asset: str,
    timestamp: int,
    timeframe_seconds: int,
    decimals: int = DEFAULT_PRICE_DECIMALS,
    options: OptionsArg = None,
) -> list[PriceData]:
    return await get_default_aggregator().get_prices(
        assets, base_asset, timestamp, timeframe_seconds, decimals, options
    )


def set_gateway(
    urls: Union[str, Sequence[str], None],
    validation_key: Optional[str] = None,
    use_current_server: bool = False,
    mode: Union[RoutingMode, str] = RoutingMode.ROUND_ROBIN,
) -> None:
    get_default_aggregator().set_gateway(urls, validation_key, use_current_server, mode)


def clear_gateway() -> None:
    get_default_aggregator().clear_gateway()
