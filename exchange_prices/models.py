"""
Exchange Prices Models - Normalized price and volume structures.

Pairs are named BASE/QUOTE with the priced asset first: BTC/USD is the
price of one BTC in USD. Exchange symbol formatters follow the same
direction.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Union

from exchange_prices.price_utils import DEFAULT_PRICE_DECIMALS, VOLUME_DECIMALS, vwap


Number = Union[int, float, str, Decimal]


@dataclass(frozen=True)
class Asset:
    """
    Canonical asset identity.

    `alias` lists the tickers exchanges may use for this asset, in lookup
    order. The canonical name is always one of them.
    """
    name: str
    alias: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        alias = tuple(self.alias)
        if self.name not in alias:
            alias = alias + (self.name,)
        object.__setattr__(self, "alias", alias)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "alias": list(self.alias)}


@dataclass(frozen=True)
class Pair:
    """Ordered (base, quote) asset pair."""
    base: Asset
    quote: Asset

    @property
    def name(self) -> str:
        return f"{self.base.name}/{self.quote.name}"

    @property
    def is_self_pair(self) -> bool:
        """A pair of an asset with itself is always worth exactly 1."""
        return self.base.name == self.quote.name

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class SymbolInfo:
    """Exchange-native symbol resolved for a pair."""
    symbol: str
    inversed: bool = False


@dataclass(frozen=True)
class RawCandle:
    """
    Exchange-native candle, already decoded from the response.

    Numeric fields keep the exchange representation (usually decimal
    strings) so they can be scaled without float rounding. `timestamp` is
    the candle open time in unix seconds.
    """
    timestamp: int
    open: Number
    high: Number
    low: Number
    close: Number
    volume: Number
    quote_volume: Number
    completed: bool = True


@dataclass(frozen=True)
class TradeData:
    """
    One timeframe bucket from one exchange.

    Volumes are ints scaled by 10**VOLUME_DECIMALS. Gap buckets (no trades
    in the interval) carry zero volumes and completed=True.
    """
    timestamp: int
    volume: int
    quote_volume: int
    source: str
    completed: bool = True

    @property
    def is_gap(self) -> bool:
        return self.volume == 0 and self.quote_volume == 0

    def price(self, decimals: int = DEFAULT_PRICE_DECIMALS) -> int:
        """VWAP of the bucket scaled to `decimals`, 0 when there were no trades."""
        if self.volume == 0 or self.quote_volume == 0:
            return 0
        return self.quote_volume * 10 ** decimals // self.volume

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "volume": str(self.volume),
            "quote_volume": str(self.quote_volume),
            "volume_decimals": VOLUME_DECIMALS,
            "source": self.source,
            "completed": self.completed,
        }


@dataclass(frozen=True)
class OHLCV:
    """
    Single candle restated in the requested pair orientation.

    Prices are ints scaled by 10**decimals, volumes stay floats.
    """
    open: int
    high: int
    low: int
    close: int
    volume: float
    quote_volume: float
    decimals: int
    source: str
    completed: bool = True
    timestamp: Optional[int] = None

    def price(self) -> int:
        """VWAP for the candle, falling back to close when nothing traded."""
        if self.volume == 0 or self.quote_volume == 0:
            return self.close
        return vwap(self.volume, self.quote_volume, self.decimals)

    def to_dict(self) -> dict[str, Any]:
        return {
            "open": str(self.open),
            "high": str(self.high),
            "low": str(self.low),
            "close": str(self.close),
            "volume": self.volume,
            "quote_volume": self.quote_volume,
            "decimals": self.decimals,
            "source": self.source,
            "completed": self.completed,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class PriceData:
    """Consensus price for one asset at one point in time."""
    timestamp: Optional[int]
    price: Optional[int]
    decimals: int = DEFAULT_PRICE_DECIMALS
    sources: list[str] = field(default_factory=list)

    @property
    def has_price(self) -> bool:
        return self.price is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "price": str(self.price) if self.price is not None else None,
            "decimals": self.decimals,
            "sources": list(self.sources),
        }
