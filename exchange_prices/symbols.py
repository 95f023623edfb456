"""
Symbol Resolver - Maps abstract pairs to exchange-native symbols.

Each exchange injects a SymbolFormatter describing how it spells a
BASE/QUOTE market (BTCUSDT, BTC-USDT, BTC_USDT, ...). Resolution tries
every alias combination in the requested orientation first, then in the
swapped orientation, which marks the result as inversed.
"""

import logging
from typing import Iterable, Optional, Protocol

from exchange_prices.models import Asset, Pair, SymbolInfo


logger = logging.getLogger(__name__)


class SymbolFormatter(Protocol):
    """Formats a (base alias, quote alias) combination as a native symbol."""

    def __call__(self, base: str, quote: str) -> str:
        ...


class ConcatFormatter:
    """BTC + USDT -> BTCUSDT (binance, bybit, kraken altnames)."""

    def __call__(self, base: str, quote: str) -> str:
        return f"{base.upper()}{quote.upper()}"

    def __repr__(self) -> str:
        return "ConcatFormatter()"


class SeparatorFormatter:
    """BTC + USDT -> BTC-USDT, BTC_USDT, ..."""

    def __init__(self, separator: str) -> None:
        self.separator = separator

    def __call__(self, base: str, quote: str) -> str:
        return f"{base.upper()}{self.separator}{quote.upper()}"

    def __repr__(self) -> str:
        return f"SeparatorFormatter({self.separator!r})"


def _find_symbol(
    base: Asset,
    quote: Asset,
    market_symbols: frozenset[str],
    formatter: SymbolFormatter,
) -> Optional[str]:
    for base_alias in base.alias:
        for quote_alias in quote.alias:
            symbol = formatter(base_alias, quote_alias)
            if symbol in market_symbols:
                return symbol
    return None


def resolve_symbol(
    pair: Pair,
    market_symbols: Iterable[str],
    formatter: SymbolFormatter,
) -> Optional[SymbolInfo]:
    """
    Find the native symbol for a pair.

    Returns:
        SymbolInfo(inversed=False) for a direct match, SymbolInfo(inversed=True)
        when only the swapped market exists, None when neither does.
    """
    if not isinstance(market_symbols, frozenset):
        market_symbols = frozenset(market_symbols)

    symbol = _find_symbol(pair.base, pair.quote, market_symbols, formatter)
    if symbol is not None:
        return SymbolInfo(symbol=symbol, inversed=False)

    symbol = _find_symbol(pair.quote, pair.base, market_symbols, formatter)
    if symbol is not None:
        return SymbolInfo(symbol=symbol, inversed=True)

    return None


class SymbolResolver:
    """
    Per-exchange market list plus a resolution cache keyed by pair name.

    The cache (including negative results) lives until the next load().
    """

    def __init__(self, formatter: SymbolFormatter, source_name: str = "") -> None:
        self._formatter = formatter
        self._source_name = source_name
        self._markets: frozenset[str] = frozenset()
        self._cache: dict[str, Optional[SymbolInfo]] = {}

    @property
    def markets(self) -> frozenset[str]:
        return self._markets

    @property
    def formatter(self) -> SymbolFormatter:
        return self._formatter

    def load(self, symbols: Iterable[str]) -> None:
        """Replace the market list and drop every cached resolution."""
        self._markets = frozenset(symbols)
        self._cache = {}
        logger.debug(f"[{self._source_name}] Loaded {len(self._markets)} markets")

    def resolve(self, pair: Pair) -> Optional[SymbolInfo]:
        if pair.name in self._cache:
            return self._cache[pair.name]
        info = resolve_symbol(pair, self._markets, self._formatter)
        self._cache[pair.name] = info
        if info is None:
            logger.debug(f"[{self._source_name}] No market for {pair.name}")
        return info

    def cached(self) -> dict[str, Optional[SymbolInfo]]:
        """Snapshot of the resolution cache."""
        return dict(self._cache)
