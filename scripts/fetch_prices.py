"""
Fetch consensus prices from live exchanges.

Demonstrates:
- Per-exchange bucket series
- Per-slot consensus prices
- Snapshot prices for a single candle
- Gateway routing from the environment
"""

import asyncio
import logging
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from exchange_prices import (
    FetchOptions,
    GatewayConfig,
    PriceAggregator,
    PriceData,
)


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def print_banner(text: str) -> None:
    """Print a banner."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


def format_price(price: PriceData) -> str:
    if price.price is None:
        return "n/a"
    return f"{price.price / 10 ** price.decimals:,.{min(price.decimals, 4)}f}"


def last_closed_slot(timeframe_seconds: int, count: int) -> int:
    """Open time of the first of the last `count` fully closed slots."""
    now = int(time.time())
    current = now - now % timeframe_seconds
    return current - count * timeframe_seconds


async def show_trades_data(aggregator: PriceAggregator, assets, base_asset, timeframe, count):
    print_banner(f"TRADES DATA ({', '.join(assets)} in {base_asset})")

    start = last_closed_slot(timeframe, count)
    trades_data = await aggregator.get_trades_data(assets, base_asset, start, timeframe, count)
    for asset, series_list in zip(assets, trades_data):
        sources = [series[0].source for series in series_list]
        print(f"\n  {asset}: {len(series_list)} sources {sources}")
        for series in series_list:
            gaps = sum(1 for bucket in series if bucket.is_gap)
            print(f"    {series[0].source:<10} buckets={len(series)} gaps={gaps}")


async def show_price_data(aggregator: PriceAggregator, assets, base_asset, timeframe, count):
    print_banner("CONSENSUS PER SLOT")

    start = last_closed_slot(timeframe, count)
    slots = await aggregator.get_price_data(assets, base_asset, start, timeframe, count)
    for slot in slots:
        row = " | ".join(
            f"{asset}: {format_price(price):>14}"
            for asset, price in zip(assets, slot)
        )
        print(f"  {slot[0].timestamp} | {row}")


async def show_snapshot(aggregator: PriceAggregator, assets, base_asset, timeframe):
    print_banner("SNAPSHOT")

    timestamp = last_closed_slot(timeframe, 1)
    prices = await aggregator.get_prices(assets, base_asset, timestamp, timeframe)
    for asset, price in zip(assets, prices):
        print(f"  {asset:<6} {format_price(price):>14}  sources={price.sources}")


async def main(assets, base_asset, timeframe, count, sources):
    overrides = {"sources": sources} if sources else None
    options = FetchOptions.from_env().merged(overrides)

    async with PriceAggregator(options=options) as aggregator:
        gateway = GatewayConfig.from_env()
        if gateway.enabled:
            aggregator.set_gateway(
                gateway.urls,
                gateway.validation_key,
                gateway.use_current_server,
                gateway.mode,
            )

        try:
            await show_trades_data(aggregator, assets, base_asset, timeframe, count)
            await show_price_data(aggregator, assets, base_asset, timeframe, count)
            await show_snapshot(aggregator, assets, base_asset, timeframe)
        except Exception as e:
            logger.error(f"Fetch failed: {e}", exc_info=True)
            raise

        print_banner("STATS")
        for key, value in aggregator.get_stats().items():
            print(f"  {key}: {value}")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Fetch consensus exchange prices")
    parser.add_argument("assets", nargs="*", default=["BTC", "ETH"],
                        help="Assets to price")
    parser.add_argument("--base", default="USD", help="Denomination asset")
    parser.add_argument("--timeframe", type=int, default=300,
                        help="Slot width in seconds")
    parser.add_argument("--count", type=int, default=6, help="Number of slots")
    parser.add_argument("--sources", default=None,
                        help="Comma separated exchange allow-list")
    args = parser.parse_args()

    asyncio.run(main(args.assets, args.base, args.timeframe, args.count, args.sources))
