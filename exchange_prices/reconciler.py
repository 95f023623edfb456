"""
Series Reconciler - Aligns raw candles to the requested slot grid.

The requested range is `count` slots starting at `start`, one every
`timeframe_seconds`. Exchanges skip intervals without trades, so every
slot without a matching candle gets a synthetic zero-volume bucket.
"""

import logging
from typing import Iterable, Optional

from exchange_prices.exceptions import TimestampMismatchError
from exchange_prices.models import OHLCV, RawCandle, TradeData
from exchange_prices.normalizer import normalize_trade_data
from exchange_prices.price_utils import VOLUME_DECIMALS


logger = logging.getLogger(__name__)


def expected_timestamps(start: int, timeframe_seconds: int, count: int) -> list[int]:
    """Slot open times for the requested range."""
    return [start + i * timeframe_seconds for i in range(count)]


def validate_timestamps(
    start: int,
    timestamps: Iterable[int],
    timeframe_seconds: int,
    source: Optional[str] = None,
) -> None:
    """
    Check that timestamps are exactly start, start + tf, start + 2tf, ...

    Raises:
        TimestampMismatchError: On the first slot that does not match
    """
    expected = start
    for actual in timestamps:
        if actual != expected:
            raise TimestampMismatchError(
                f"Timestamp mismatch: {actual} != {expected}",
                source_name=source,
                expected=expected,
                actual=actual,
            )
        expected += timeframe_seconds


def gap_bucket(timestamp: int, source: str) -> TradeData:
    """Bucket for an interval in which the market had no trades."""
    return TradeData(
        timestamp=timestamp,
        volume=0,
        quote_volume=0,
        source=source,
        completed=True,
    )


def _check_count(count: int) -> None:
    if count < 1:
        raise ValueError("Count should be greater than 0")


def reconcile(
    raw_candles: Optional[Iterable[RawCandle]],
    start: int,
    timeframe_seconds: int,
    count: int,
    inversed: bool,
    source: str,
) -> list[TradeData]:
    """
    Build exactly `count` buckets for the requested range.

    Candles are matched to slots by timestamp, so their order does not
    matter. The first candle wins on duplicate timestamps and candles off
    the slot grid are ignored.

    Raises:
        ValueError: If count < 1
        TimestampMismatchError: If the resulting series is not on the grid
    """
    _check_count(count)

    by_timestamp: dict[int, RawCandle] = {}
    for candle in raw_candles or ():
        by_timestamp.setdefault(candle.timestamp, candle)

    buckets: list[TradeData] = []
    matched = 0
    for timestamp in expected_timestamps(start, timeframe_seconds, count):
        candle = by_timestamp.get(timestamp)
        if candle is None:
            buckets.append(gap_bucket(timestamp, source))
        else:
            buckets.append(normalize_trade_data(candle, inversed, source))
            matched += 1

    ignored = len(by_timestamp) - matched
    if ignored:
        logger.debug(f"[{source}] Ignored {ignored} candles outside the requested range")

    validate_timestamps(start, (bucket.timestamp for bucket in buckets), timeframe_seconds, source)
    return buckets


def self_pair_series(
    start: int,
    timeframe_seconds: int,
    count: int,
    source: str,
) -> list[TradeData]:
    """Unit-volume series for a pair of an asset with itself (price 1)."""
    _check_count(count)
    unit = 10 ** VOLUME_DECIMALS
    return [
        TradeData(
            timestamp=timestamp,
            volume=unit,
            quote_volume=unit,
            source=source,
            completed=True,
        )
        for timestamp in expected_timestamps(start, timeframe_seconds, count)
    ]


def unit_ohlcv(decimals: int, source: str, timestamp: Optional[int] = None) -> OHLCV:
    """Single candle priced at exactly 1 for a self-pair."""
    one = 10 ** decimals
    return OHLCV(
        open=one,
        high=one,
        low=one,
        close=one,
        volume=1.0,
        quote_volume=1.0,
        decimals=decimals,
        source=source,
        completed=True,
        timestamp=timestamp,
    )
