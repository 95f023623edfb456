"""
Exchange Prices - Configuration.

============================================================
FETCH OPTIONS
============================================================

Batching, pacing, retry and source selection for the orchestrator.

Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honoured)
- YAML config file
- Per-call overrides (mapping with snake_case or camelCase keys)

============================================================
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv

from exchange_prices.exceptions import InvalidRequestError
from exchange_prices.routing import RoutingMode


logger = logging.getLogger(__name__)


ENV_PREFIX = "EXCHANGE_PRICES_"

# gate is supported but opt-in
DEFAULT_SOURCES = ("binance", "bybit", "coinbase", "kraken", "okx")

MARKETS_TTL_SECONDS = 6 * 60 * 60

_OPTION_ALIASES = {
    "batchSize": "batch_size",
    "batchDelay": "batch_delay",
    "maxRetries": "max_retries",
    "marketsTtlSeconds": "markets_ttl_seconds",
}


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# =============================================================
# FETCH OPTIONS
# =============================================================


@dataclass
class FetchOptions:
    """
    Options recognised by the fetch orchestrator.

    Durations are milliseconds except markets_ttl_seconds.
    """
    batch_size: int = 10
    batch_delay: int = 2000
    sources: tuple[str, ...] = DEFAULT_SOURCES
    timeout: int = 3000
    max_retries: int = 3
    markets_ttl_seconds: int = MARKETS_TTL_SECONDS

    def __post_init__(self) -> None:
        """Validate options."""
        if isinstance(self.sources, str):
            self.sources = tuple(_split_list(self.sources))
        self.sources = tuple(source.lower() for source in self.sources)
        if self.timeout <= 0:
            raise InvalidRequestError("timeout must be > 0")
        if self.batch_delay < 0:
            raise InvalidRequestError("batch_delay must be >= 0")
        if self.max_retries < 1:
            raise InvalidRequestError("max_retries must be >= 1")

    def merged(
        self,
        overrides: Union["FetchOptions", Mapping[str, Any], None],
    ) -> "FetchOptions":
        """Return a copy with per-call overrides applied. None values are ignored."""
        if overrides is None:
            return self
        if isinstance(overrides, FetchOptions):
            return overrides

        values = self.to_dict()
        for key, value in overrides.items():
            key = _OPTION_ALIASES.get(key, key)
            if key not in values:
                raise InvalidRequestError(f"Unknown fetch option: {key}")
            if value is not None:
                values[key] = value
        return FetchOptions(**values)

    @classmethod
    def from_env(cls) -> "FetchOptions":
        """
        Load options from environment variables.

        Environment variables:
        - EXCHANGE_PRICES_BATCH_SIZE
        - EXCHANGE_PRICES_BATCH_DELAY
        - EXCHANGE_PRICES_SOURCES (comma separated)
        - EXCHANGE_PRICES_TIMEOUT
        - EXCHANGE_PRICES_MAX_RETRIES
        - EXCHANGE_PRICES_MARKETS_TTL
        """
        load_dotenv()
        config = cls()

        if os.getenv(f"{ENV_PREFIX}BATCH_SIZE"):
            config.batch_size = int(os.getenv(f"{ENV_PREFIX}BATCH_SIZE"))
        if os.getenv(f"{ENV_PREFIX}BATCH_DELAY"):
            config.batch_delay = int(os.getenv(f"{ENV_PREFIX}BATCH_DELAY"))
        if os.getenv(f"{ENV_PREFIX}SOURCES"):
            config.sources = tuple(_split_list(os.getenv(f"{ENV_PREFIX}SOURCES").lower()))
        if os.getenv(f"{ENV_PREFIX}TIMEOUT"):
            config.timeout = int(os.getenv(f"{ENV_PREFIX}TIMEOUT"))
        if os.getenv(f"{ENV_PREFIX}MAX_RETRIES"):
            config.max_retries = int(os.getenv(f"{ENV_PREFIX}MAX_RETRIES"))
        if os.getenv(f"{ENV_PREFIX}MARKETS_TTL"):
            config.markets_ttl_seconds = int(os.getenv(f"{ENV_PREFIX}MARKETS_TTL"))

        # re-run validation on the loaded values
        return cls(**config.to_dict())

    @classmethod
    def from_yaml(cls, path: Path) -> "FetchOptions":
        """Load options from the `fetch` section (or root) of a YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        section = data.get("fetch", data)
        known = {f.name for f in fields(cls)}
        unknown = set(section) - known - set(_OPTION_ALIASES)
        if unknown:
            logger.warning(f"Ignoring unknown fetch options in {path}: {sorted(unknown)}")
        return cls().merged({k: v for k, v in section.items() if k not in unknown})

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["sources"] = tuple(self.sources)
        return data


# =============================================================
# GATEWAY CONFIGURATION
# =============================================================


@dataclass
class GatewayConfig:
    """Gateway relays used to spread outbound requests."""
    urls: list[str] = field(default_factory=list)
    validation_key: Optional[str] = None
    use_current_server: bool = False
    mode: RoutingMode = RoutingMode.ROUND_ROBIN

    def __post_init__(self) -> None:
        self.mode = RoutingMode(self.mode)

    @property
    def enabled(self) -> bool:
        return bool(self.urls)

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """
        Environment variables:
        - EXCHANGE_PRICES_GATEWAYS (comma separated urls)
        - EXCHANGE_PRICES_GATEWAY_KEY
        - EXCHANGE_PRICES_GATEWAY_USE_CURRENT (true/false)
        - EXCHANGE_PRICES_GATEWAY_MODE (round_robin/random)
        """
        load_dotenv()
        return cls(
            urls=_split_list(os.getenv(f"{ENV_PREFIX}GATEWAYS", "")),
            validation_key=os.getenv(f"{ENV_PREFIX}GATEWAY_KEY") or None,
            use_current_server=os.getenv(f"{ENV_PREFIX}GATEWAY_USE_CURRENT", "").lower() in ("1", "true", "yes"),
            mode=os.getenv(f"{ENV_PREFIX}GATEWAY_MODE", RoutingMode.ROUND_ROBIN.value).lower(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary. The validation key is never exposed."""
        return {
            "urls": list(self.urls),
            "validation_key_set": self.validation_key is not None,
            "use_current_server": self.use_current_server,
            "mode": self.mode.value,
        }


# =============================================================
# GLOBAL CONFIG SINGLETON
# =============================================================


_default_options: Optional[FetchOptions] = None


def get_config() -> FetchOptions:
    """Get the global fetch options."""
    global _default_options
    if _default_options is None:
        _default_options = FetchOptions.from_env()
    return _default_options


def set_config(options: FetchOptions) -> None:
    """Set the global fetch options."""
    global _default_options
    _default_options = options
