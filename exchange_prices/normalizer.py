"""
Candle Normalizer - Restates raw exchange candles in the requested orientation.

An inversed market (the exchange lists QUOTE/BASE) is restated by:
- inverting every price,
- swapping high and low, since inversion reverses their order,
- swapping volume and quote volume.
"""

from exchange_prices.exceptions import InvalidNumberError
from exchange_prices.models import OHLCV, RawCandle, TradeData
from exchange_prices.price_utils import (
    VOLUME_DECIMALS,
    to_decimal,
    invert_price,
    to_fixed_point,
    volume_to_fixed,
)


def _to_float(value) -> float:
    try:
        return float(to_decimal(value))
    except InvalidNumberError:
        return 0.0


def normalize_ohlcv(
    raw: RawCandle,
    decimals: int,
    inversed: bool,
    source: str,
) -> OHLCV:
    """
    Convert a raw candle to a fixed-point OHLCV record.

    Raises:
        InvalidNumberError: If a price field is not a finite number
    """
    open_ = to_fixed_point(raw.open, decimals)
    high = to_fixed_point(raw.high, decimals)
    low = to_fixed_point(raw.low, decimals)
    close = to_fixed_point(raw.close, decimals)
    volume = _to_float(raw.volume)
    quote_volume = _to_float(raw.quote_volume)

    if inversed:
        open_, high, low, close = (
            invert_price(open_, decimals),
            invert_price(low, decimals),
            invert_price(high, decimals),
            invert_price(close, decimals),
        )
        volume, quote_volume = quote_volume, volume

    return OHLCV(
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
        quote_volume=quote_volume,
        decimals=decimals,
        source=source,
        completed=raw.completed,
        timestamp=raw.timestamp,
    )


def normalize_trade_data(
    raw: RawCandle,
    inversed: bool,
    source: str,
    decimals: int = VOLUME_DECIMALS,
) -> TradeData:
    """
    Convert a raw candle to a volume bucket.

    `completed` is taken from the exchange. Exchanges without a closed
    candle flag report True, an optimistic approximation.
    """
    volume = volume_to_fixed(raw.volume, decimals)
    quote_volume = volume_to_fixed(raw.quote_volume, decimals)
    if inversed:
        volume, quote_volume = quote_volume, volume
    return TradeData(
        timestamp=raw.timestamp,
        volume=volume,
        quote_volume=quote_volume,
        source=source,
        completed=raw.completed,
    )
