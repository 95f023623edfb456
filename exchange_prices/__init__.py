"""
Exchange Prices Package - Consensus crypto prices from public exchange APIs.

Fetches historical candles for many assets from several exchanges at once
and derives a robust price per asset and time slot.

Features:
- Exact fixed-point prices (plain ints scaled by 10**decimals)
- Automatic symbol resolution, including inverted markets
- Gap-filled, timestamp-validated bucket series per exchange
- Median consensus with 4% outlier rejection
- Batching, pacing and retries per exchange
- Optional gateway relay rotation

Quick Start:
    from exchange_prices import PriceAggregator

    async def main():
        async with PriceAggregator() as aggregator:
            slots = await aggregator.get_price_data(
                ["BTC", "ETH"],
                "USD",
                timestamp=1700000000,
                timeframe_seconds=300,
                count=12,
            )
            for slot in slots:
                for price in slot:
                    print(price.timestamp, price.price, price.sources)

Adding New Exchanges:
    1. Create class extending ExchangeAdapter
    2. Implement: name, _load_market_symbols(), _fetch_candles_page()
    3. Set INTERVALS, MAX_CANDLES and the symbol formatter
    4. Add it to ADAPTER_CLASSES
"""

from exchange_prices.adapters import (
    ADAPTER_CLASSES,
    BinanceAdapter,
    BybitAdapter,
    CoinbaseAdapter,
    ExchangeAdapter,
    GateAdapter,
    KrakenAdapter,
    OKXAdapter,
    create_adapter,
    create_adapters,
)
from exchange_prices.assets import AssetRegistry, get_asset, get_pairs, make_pair
from exchange_prices.config import FetchOptions, GatewayConfig, get_config, set_config
from exchange_prices.consensus import (
    consensus_series,
    consensus_snapshot,
    get_median_price,
    median_price,
    price_or_zero,
)
from exchange_prices.exceptions import (
    FetchError,
    IncompleteCandleError,
    InvalidNumberError,
    InvalidRequestError,
    InvalidTimeframeError,
    MarketLoadError,
    PriceSourceError,
    RateLimitError,
    TimestampMismatchError,
)
from exchange_prices.models import (
    OHLCV,
    Asset,
    Pair,
    PriceData,
    RawCandle,
    SymbolInfo,
    TradeData,
)
from exchange_prices.orchestrator import (
    PriceAggregator,
    clear_gateway,
    get_default_aggregator,
    get_ohlcvs,
    get_price_data,
    get_prices,
    get_trades_data,
    set_gateway,
)
from exchange_prices.price_utils import (
    DEFAULT_PRICE_DECIMALS,
    VOLUME_DECIMALS,
    invert_price,
    to_fixed_point,
    vwap,
)
from exchange_prices.routing import RoutingMode, RoutingState
from exchange_prices.transport import HttpTransport

__version__ = "1.0.0"

__all__ = [
    # Aggregator
    "PriceAggregator",
    "get_default_aggregator",
    "get_trades_data",
    "get_price_data",
    "get_ohlcvs",
    "get_prices",
    "set_gateway",
    "clear_gateway",
    # Adapters
    "ExchangeAdapter",
    "BinanceAdapter",
    "BybitAdapter",
    "OKXAdapter",
    "KrakenAdapter",
    "CoinbaseAdapter",
    "GateAdapter",
    "ADAPTER_CLASSES",
    "create_adapter",
    "create_adapters",
    # Models
    "Asset",
    "Pair",
    "SymbolInfo",
    "RawCandle",
    "TradeData",
    "OHLCV",
    "PriceData",
    # Assets
    "AssetRegistry",
    "get_asset",
    "get_pairs",
    "make_pair",
    # Prices
    "DEFAULT_PRICE_DECIMALS",
    "VOLUME_DECIMALS",
    "to_fixed_point",
    "invert_price",
    "vwap",
    "median_price",
    "get_median_price",
    "price_or_zero",
    "consensus_series",
    "consensus_snapshot",
    # Transport & config
    "HttpTransport",
    "RoutingState",
    "RoutingMode",
    "FetchOptions",
    "GatewayConfig",
    "get_config",
    "set_config",
    # Exceptions
    "PriceSourceError",
    "InvalidRequestError",
    "InvalidTimeframeError",
    "InvalidNumberError",
    "TimestampMismatchError",
    "MarketLoadError",
    "FetchError",
    "RateLimitError",
    "IncompleteCandleError",
]
