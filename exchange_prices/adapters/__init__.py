"""
Exchange Adapters.

Fixed set of public-API adapters plus a small factory. Adapters created
together share one HttpTransport, and therefore one connection pool and
one gateway routing state.
"""

import logging
from typing import Iterable, Optional, Type

from exchange_prices.adapters.base import ExchangeAdapter
from exchange_prices.adapters.binance import BinanceAdapter
from exchange_prices.adapters.bybit import BybitAdapter
from exchange_prices.adapters.coinbase import CoinbaseAdapter
from exchange_prices.adapters.gate import GateAdapter
from exchange_prices.adapters.kraken import KrakenAdapter
from exchange_prices.adapters.okx import OKXAdapter
from exchange_prices.transport import HttpTransport


logger = logging.getLogger(__name__)


ADAPTER_CLASSES: dict[str, Type[ExchangeAdapter]] = {
    "binance": BinanceAdapter,
    "bybit": BybitAdapter,
    "okx": OKXAdapter,
    "kraken": KrakenAdapter,
    "gate": GateAdapter,
    "coinbase": CoinbaseAdapter,
}


def list_supported() -> list[str]:
    """Names of all supported exchanges."""
    return list(ADAPTER_CLASSES)


def create_adapter(name: str, transport: Optional[HttpTransport] = None) -> ExchangeAdapter:
    """
    Create an adapter by exchange name.

    Raises:
        ValueError: If the exchange is not supported
    """
    adapter_class = ADAPTER_CLASSES.get(name.lower())
    if adapter_class is None:
        raise ValueError(
            f"Unsupported exchange: {name}. Supported: {', '.join(ADAPTER_CLASSES)}"
        )
    return adapter_class(transport=transport)


def create_adapters(
    transport: HttpTransport,
    names: Optional[Iterable[str]] = None,
) -> list[ExchangeAdapter]:
    """Create adapters sharing one transport (all supported when names is None)."""
    names = list(names) if names is not None else list_supported()
    return [create_adapter(name, transport) for name in names]


__all__ = [
    "ExchangeAdapter",
    "BinanceAdapter",
    "BybitAdapter",
    "OKXAdapter",
    "KrakenAdapter",
    "GateAdapter",
    "CoinbaseAdapter",
    "ADAPTER_CLASSES",
    "list_supported",
    "create_adapter",
    "create_adapters",
]
