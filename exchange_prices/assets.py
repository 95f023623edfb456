"""
Asset & Pair Registry.

Assets are created on first lookup and cached for the life of the
process, one instance per canonical name. Known aliases come from the
bundled assets_glossary.yaml.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import yaml

from exchange_prices.models import Asset, Pair


logger = logging.getLogger(__name__)


GLOSSARY_PATH = Path(__file__).with_name("assets_glossary.yaml")


def load_glossary(path: Path = GLOSSARY_PATH) -> dict[str, list[str]]:
    """Load the alias glossary (canonical name -> alias list)."""
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    return {
        str(name).upper(): [str(alias).upper() for alias in aliases or []]
        for name, aliases in data.items()
    }


class AssetRegistry:
    """Process-wide cache of Asset instances keyed by canonical name."""

    def __init__(self, glossary: Optional[dict[str, list[str]]] = None) -> None:
        self._assets: dict[str, Asset] = {}
        for name, aliases in (glossary or {}).items():
            self._assets[name] = Asset(name, tuple(aliases))

    def get(self, name: str) -> Asset:
        """Return the cached asset, creating it with a single alias if unknown."""
        name = name.upper()
        asset = self._assets.get(name)
        if asset is None:
            asset = Asset(name, (name,))
            self._assets[name] = asset
        return asset

    def __contains__(self, name: str) -> bool:
        return name.upper() in self._assets

    def __len__(self) -> int:
        return len(self._assets)


_default_registry: Optional[AssetRegistry] = None


def get_asset_registry() -> AssetRegistry:
    """Get or create the default registry, seeded from the glossary."""
    global _default_registry
    if _default_registry is None:
        _default_registry = AssetRegistry(load_glossary())
    return _default_registry


def get_asset(name: str) -> Asset:
    """Look up an asset by canonical name."""
    return get_asset_registry().get(name)


def make_pair(base: Asset, quote: Asset) -> Pair:
    """Build a pair. Self-pairs are valid and price at exactly 1."""
    return Pair(base, quote)


def get_pairs(assets: Iterable[str], denomination: str) -> list[Pair]:
    """
    Build ASSET/DENOMINATION pairs for a list of asset names.

    Args:
        assets: Asset names to price
        denomination: Asset the prices are expressed in (e.g. "USD")
    """
    quote = get_asset(denomination)
    return [make_pair(get_asset(name), quote) for name in assets]
