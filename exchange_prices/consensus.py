"""
Consensus Aggregator - Robust price across disagreeing exchanges.

Every source contributes its own price for a slot; the consensus is the
median after discarding prices more than 4% away from it. No single
exchange is authoritative, so one or two exchanges reporting stale or
corrupted prices cannot move the result.
"""

import logging
from typing import Iterable, Optional, Sequence

from exchange_prices.models import OHLCV, PriceData, TradeData
from exchange_prices.price_utils import DEFAULT_PRICE_DECIMALS
from exchange_prices.reconciler import expected_timestamps


logger = logging.getLogger(__name__)


# Max deviation from the median, in percent, before a price is an outlier
OUTLIER_THRESHOLD_PERCENT = 4


def median(values: Sequence[int]) -> int:
    """Median of an ascending, non-empty list (floor mean for even sizes)."""
    middle = len(values) // 2
    if len(values) % 2:
        return values[middle]
    return (values[middle - 1] + values[middle]) // 2


def _within_threshold(value: int, reference: int) -> bool:
    scaled_ratio = 100 - 100 * value // reference
    return abs(scaled_ratio) <= OUTLIER_THRESHOLD_PERCENT


def median_price(prices: Iterable[int]) -> Optional[int]:
    """
    Median price with outlier rejection.

    1. Drop non-positive prices (no data).
    2. No prices left -> None.
    3. Median of the sorted prices.
    4. Drop prices deviating more than 4% from that median.
    5. Recompute the median only if something was dropped and more than
       one price survived; otherwise the first median stands.
    """
    values = sorted(price for price in prices if price > 0)
    length = len(values)
    if not length:
        return None

    result = median(values)

    filtered = [value for value in values if _within_threshold(value, result)]
    if len(filtered) != length and len(filtered) > 1:
        result = median(filtered)
    return result


def price_or_zero(price: Optional[int]) -> int:
    """Map an unknown consensus price to 0 for display."""
    return price if price is not None else 0


def get_median_price(ohlcvs: Iterable[OHLCV]) -> Optional[int]:
    """Consensus of the VWAP (or close) prices of several candles."""
    return median_price(ohlcv.price() for ohlcv in ohlcvs)


def is_usable_series(series: Optional[Sequence[TradeData]], count: int) -> bool:
    """A series is usable when it is complete: `count` closed buckets."""
    if not series or len(series) != count:
        return False
    return all(bucket.completed for bucket in series)


def usable_series(
    series_list: Iterable[Optional[Sequence[TradeData]]],
    count: int,
) -> list[Sequence[TradeData]]:
    """Drop sources with missing or incomplete data."""
    result = []
    for series in series_list:
        if is_usable_series(series, count):
            result.append(series)
        elif series:
            logger.debug(f"[{series[0].source}] Discarding incomplete series ({len(series)}/{count})")
    return result


def consensus_series(
    series_list: Iterable[Optional[Sequence[TradeData]]],
    start: int,
    timeframe_seconds: int,
    count: int,
    decimals: int = DEFAULT_PRICE_DECIMALS,
) -> list[PriceData]:
    """
    Per-slot consensus for one asset.

    Args:
        series_list: One bucket series per exchange
        start: First slot timestamp
        timeframe_seconds: Slot width
        count: Number of slots
        decimals: Price scale of the result

    Returns:
        `count` PriceData records; price is None for slots nobody traded in
    """
    usable = usable_series(series_list, count)
    result = []
    for i, timestamp in enumerate(expected_timestamps(start, timeframe_seconds, count)):
        prices = []
        sources = []
        for series in usable:
            price = series[i].price(decimals)
            if price > 0:
                prices.append(price)
                sources.append(series[i].source)
        result.append(PriceData(
            timestamp=timestamp,
            price=median_price(prices),
            decimals=decimals,
            sources=sources,
        ))
    return result


def consensus_snapshot(
    ohlcvs: Iterable[OHLCV],
    timestamp: Optional[int] = None,
    decimals: int = DEFAULT_PRICE_DECIMALS,
) -> PriceData:
    """Consensus for a single candle per exchange."""
    prices = []
    sources = []
    for ohlcv in ohlcvs:
        if not ohlcv.completed:
            continue
        price = ohlcv.price()
        if price > 0:
            prices.append(price)
            sources.append(ohlcv.source)
    return PriceData(
        timestamp=timestamp,
        price=median_price(prices),
        decimals=decimals,
        sources=sources,
    )
