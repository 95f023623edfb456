"""
Exchange Adapter Tests.

============================================================
PURPOSE
============================================================
Adapters against canned exchange responses, no network access.

TEST CATEGORIES:
- Factory tests: Adapter creation
- Shared behaviour: markets, shortcuts, paging, errors
- Per-exchange parsing: request shaping and candle layout

============================================================
"""

import pytest

from exchange_prices.adapters import (
    ADAPTER_CLASSES,
    BinanceAdapter,
    BybitAdapter,
    CoinbaseAdapter,
    GateAdapter,
    KrakenAdapter,
    OKXAdapter,
    create_adapter,
    create_adapters,
    list_supported,
)
from exchange_prices.exceptions import FetchError, MarketLoadError
from exchange_prices.models import Asset, Pair, SymbolInfo
from exchange_prices.transport import HttpTransport


START = 1_699_999_800
BTC = Asset("BTC", ("BTC", "XBT"))
ETH = Asset("ETH", ("ETH",))
USD = Asset("USD", ("USD", "USDT", "USDC"))
BTC_USD = Pair(BTC, USD)


class FakeTransport:
    """Serves canned JSON keyed by URL path suffix and records requests."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def request(self, url, params=None, timeout=3000, source_name=None):
        self.calls.append((url, params))
        for path, response in self.responses.items():
            if url.endswith(path):
                if isinstance(response, Exception):
                    raise response
                return response(params) if callable(response) else response
        raise FetchError(f"Unexpected url {url}", source_name=source_name)

    async def close(self):
        pass

    def calls_to(self, path):
        return [params for url, params in self.calls if url.endswith(path)]


def binance_kline(timestamp, volume="2", quote_volume="200"):
    return [timestamp * 1000, "100", "110", "90", "105", volume, timestamp * 1000 + 59999, quote_volume, 10]


BINANCE_MARKETS = {
    "symbols": [
        {"symbol": "BTCUSDT", "status": "TRADING"},
        {"symbol": "ETHUSDT", "status": "BREAK"},
    ]
}


# ============================================================
# FACTORY TESTS
# ============================================================

class TestAdapterFactory:
    """Tests for the adapter factory."""

    def test_list_supported(self):
        supported = list_supported()
        assert set(supported) == {"binance", "bybit", "okx", "kraken", "gate", "coinbase"}

    def test_create_adapter(self):
        adapter = create_adapter("Binance")
        assert isinstance(adapter, BinanceAdapter)
        assert adapter.name == "binance"

    def test_create_unsupported_raises(self):
        with pytest.raises(ValueError, match="Unsupported exchange"):
            create_adapter("unknown")

    def test_create_adapters_share_transport(self):
        transport = HttpTransport()
        adapters = create_adapters(transport)

        assert [a.name for a in adapters] == list(ADAPTER_CLASSES)
        assert all(a._transport is transport for a in adapters)

    def test_create_named_adapters(self):
        adapters = create_adapters(HttpTransport(), ["okx", "kraken"])
        assert [a.name for a in adapters] == ["okx", "kraken"]


# ============================================================
# SHARED BEHAVIOUR
# ============================================================

class TestExchangeAdapter:
    """Tests for behaviour shared by all adapters."""

    @pytest.fixture
    def transport(self):
        return FakeTransport({
            "/api/v3/exchangeInfo": BINANCE_MARKETS,
            "/api/v3/klines": [binance_kline(START), binance_kline(START + 120)],
        })

    @pytest.fixture
    def adapter(self, transport):
        return BinanceAdapter(transport=transport)

    @pytest.mark.asyncio
    async def test_load_markets(self, adapter):
        assert adapter.markets_stale(60)

        await adapter.load_markets()

        assert adapter.markets == frozenset({"BTCUSDT"})
        assert adapter.markets_loaded_at > 0
        assert not adapter.markets_stale(60)

    @pytest.mark.asyncio
    async def test_empty_markets_raise(self):
        adapter = BinanceAdapter(transport=FakeTransport({"/api/v3/exchangeInfo": {"symbols": []}}))

        with pytest.raises(MarketLoadError, match="Empty market list"):
            await adapter.load_markets()

    @pytest.mark.asyncio
    async def test_malformed_markets_raise(self):
        adapter = BinanceAdapter(transport=FakeTransport({"/api/v3/exchangeInfo": {"unexpected": 1}}))

        with pytest.raises(MarketLoadError, match="Malformed"):
            await adapter.load_markets()

    @pytest.mark.asyncio
    async def test_fetch_failure_becomes_market_load_error(self):
        error = FetchError("HTTP 503", source_name="binance", status_code=503)
        adapter = BinanceAdapter(transport=FakeTransport({"/api/v3/exchangeInfo": error}))

        with pytest.raises(MarketLoadError) as exc_info:
            await adapter.load_markets()

        assert exc_info.value.original_error is error
        data = exc_info.value.to_dict()
        assert data["error_type"] == "MarketLoadError"
        assert data["source_name"] == "binance"
        assert set(data) == {
            "error_type", "message", "source_name", "original_error", "context", "timestamp",
        }

    @pytest.mark.asyncio
    async def test_reload_clears_symbol_cache(self, adapter, transport):
        await adapter.load_markets()
        assert adapter.get_symbol_info(Pair(ETH, USD)) is None

        transport.responses["/api/v3/exchangeInfo"] = {"symbols": [{"symbol": "ETHUSDT", "status": "TRADING"}]}
        await adapter.load_markets()

        assert adapter.get_symbol_info(Pair(ETH, USD)) == SymbolInfo("ETHUSDT")

    @pytest.mark.asyncio
    async def test_trades_data_fills_gaps(self, adapter, transport):
        await adapter.load_markets()

        series = await adapter.get_trades_data(BTC_USD, START, 1, 3)

        assert [b.timestamp for b in series] == [START, START + 60, START + 120]
        assert [b.is_gap for b in series] == [False, True, False]
        assert series[0].price(2) == 10000
        assert all(b.source == "binance" for b in series)

    @pytest.mark.asyncio
    async def test_self_pair_skips_network(self, adapter, transport):
        series = await adapter.get_trades_data(Pair(USD, USD), START, 1, 2)

        assert [b.price(7) for b in series] == [10_000_000, 10_000_000]
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_unresolvable_pair_is_all_gaps(self, adapter, transport):
        await adapter.load_markets()

        series = await adapter.get_trades_data(Pair(ETH, USD), START, 1, 4)

        assert len(series) == 4
        assert all(b.is_gap for b in series)
        assert transport.calls_to("/api/v3/klines") == []

    @pytest.mark.asyncio
    async def test_count_must_be_positive(self, adapter):
        with pytest.raises(ValueError):
            await adapter.get_trades_data(BTC_USD, START, 1, 0)

    @pytest.mark.asyncio
    async def test_unsupported_timeframe(self, adapter):
        await adapter.load_markets()

        with pytest.raises(FetchError, match="Unsupported timeframe"):
            await adapter.get_trades_data(BTC_USD, START, 7, 1)

    @pytest.mark.parametrize("adapter_class,timeframe,supported", [
        (BinanceAdapter, 3, True),
        (CoinbaseAdapter, 3, False),
        (KrakenAdapter, 30, True),
        (CoinbaseAdapter, 30, False),
        (OKXAdapter, 10, False),
    ])
    def test_supports_timeframe(self, adapter_class, timeframe, supported):
        assert adapter_class(transport=FakeTransport({})).supports_timeframe(timeframe) is supported

    @pytest.mark.asyncio
    async def test_paging(self, adapter, transport):
        await adapter.load_markets()
        adapter.MAX_CANDLES = 2

        await adapter.get_trades_data(BTC_USD, START, 1, 5)

        pages = transport.calls_to("/api/v3/klines")
        assert [(p["startTime"], p["limit"]) for p in pages] == [
            (START * 1000, 2),
            ((START + 120) * 1000, 2),
            ((START + 240) * 1000, 1),
        ]

    @pytest.mark.asyncio
    async def test_malformed_candles_raise_fetch_error(self, transport, adapter):
        await adapter.load_markets()
        transport.responses["/api/v3/klines"] = [["garbage"]]

        with pytest.raises(FetchError, match="Malformed"):
            await adapter.get_trades_data(BTC_USD, START, 1, 1)

    @pytest.mark.asyncio
    async def test_get_ohlcv_exact_timestamp(self, adapter):
        await adapter.load_markets()

        ohlcv = await adapter.get_ohlcv(BTC_USD, START, 1, 2)
        missing = await adapter.get_ohlcv(BTC_USD, START + 60, 1, 2)

        assert ohlcv.close == 10500
        assert ohlcv.price() == 10000
        assert ohlcv.timestamp == START
        assert missing is None

    @pytest.mark.asyncio
    async def test_get_ohlcv_self_pair(self, adapter):
        ohlcv = await adapter.get_ohlcv(Pair(BTC, BTC), START, 1, 3)
        assert ohlcv.price() == 1000

    @pytest.mark.asyncio
    async def test_get_ohlcv_unknown_market(self, adapter):
        await adapter.load_markets()
        assert await adapter.get_ohlcv(Pair(ETH, USD), START, 1, 2) is None

    @pytest.mark.asyncio
    async def test_inversed_market(self):
        transport = FakeTransport({
            "/api/v3/exchangeInfo": {"symbols": [{"symbol": "USDTBTC", "status": "TRADING"}]},
            # USDTBTC: 200 USDT traded for 0.01 BTC, so 1 BTC = 20000 USDT
            "/api/v3/klines": [binance_kline(START, volume="200", quote_volume="0.01")],
        })
        adapter = BinanceAdapter(transport=transport)
        await adapter.load_markets()

        series = await adapter.get_trades_data(BTC_USD, START, 1, 1)

        assert series[0].price(2) == 2_000_000


# ============================================================
# PER-EXCHANGE PARSING
# ============================================================

class TestBinanceAdapter:
    """Tests for BinanceAdapter request shaping."""

    @pytest.mark.asyncio
    async def test_klines_params(self):
        transport = FakeTransport({"/api/v3/klines": []})
        adapter = BinanceAdapter(transport=transport)

        await adapter.fetch_candles("BTCUSDT", START, 60, 3)

        params = transport.calls_to("/api/v3/klines")[0]
        assert params["interval"] == "1h"
        assert params["endTime"] == (START + 2 * 3600) * 1000
        assert params["limit"] == 3


class TestBybitAdapter:
    """Tests for BybitAdapter."""

    @pytest.mark.asyncio
    async def test_markets_and_candles(self):
        transport = FakeTransport({
            "/v5/market/instruments-info": {
                "retCode": 0,
                "result": {"list": [{"symbol": "BTCUSDT", "status": "Trading"}]},
            },
            "/v5/market/kline": {
                "retCode": 0,
                "result": {"list": [
                    [str((START + 60) * 1000), "1", "1", "1", "1", "3", "330"],
                    [str(START * 1000), "1", "1", "1", "1", "2", "200"],
                ]},
            },
        })
        adapter = BybitAdapter(transport=transport)
        await adapter.load_markets()

        series = await adapter.get_trades_data(BTC_USD, START, 1, 2)

        assert [b.price(0) for b in series] == [100, 110]
        assert transport.calls_to("/v5/market/kline")[0]["category"] == "spot"

    @pytest.mark.asyncio
    async def test_error_envelope(self):
        transport = FakeTransport({
            "/v5/market/kline": {"retCode": 10001, "retMsg": "params error"},
        })
        adapter = BybitAdapter(transport=transport)

        with pytest.raises(FetchError, match="params error"):
            await adapter.fetch_candles("BTCUSDT", START, 1, 1)


class TestOKXAdapter:
    """Tests for OKXAdapter."""

    @pytest.fixture
    def transport(self):
        return FakeTransport({
            "/api/v5/public/instruments": {
                "code": "0",
                "data": [
                    {"instId": "BTC-USDT", "state": "live"},
                    {"instId": "ETH-USDT", "state": "suspend"},
                ],
            },
            "/api/v5/market/history-candles": {
                "code": "0",
                "data": [
                    [str((START + 60) * 1000), "1", "1", "1", "1", "3", "3", "330", "0"],
                    [str(START * 1000), "1", "1", "1", "1", "2", "2", "200", "1"],
                ],
            },
        })

    @pytest.mark.asyncio
    async def test_confirm_flag(self, transport):
        adapter = OKXAdapter(transport=transport)
        await adapter.load_markets()

        series = await adapter.get_trades_data(BTC_USD, START, 1, 2)

        assert adapter.markets == frozenset({"BTC-USDT"})
        assert [b.completed for b in series] == [True, False]

    @pytest.mark.asyncio
    async def test_paging_params(self, transport):
        adapter = OKXAdapter(transport=transport)

        await adapter.fetch_candles("BTC-USDT", START, 1, 2)

        params = transport.calls_to("/api/v5/market/history-candles")[0]
        assert params["after"] == (START + 61) * 1000
        assert params["before"] == START * 1000 - 1
        assert params["bar"] == "1m"

    @pytest.mark.asyncio
    async def test_error_code(self):
        transport = FakeTransport({
            "/api/v5/market/history-candles": {"code": "51001", "msg": "Instrument ID does not exist"},
        })

        with pytest.raises(FetchError, match="51001"):
            await OKXAdapter(transport=transport).fetch_candles("X-Y", START, 1, 1)


class TestKrakenAdapter:
    """Tests for KrakenAdapter."""

    @pytest.fixture
    def transport(self):
        return FakeTransport({
            "/0/public/AssetPairs": {
                "error": [],
                "result": {"XXBTZUSD": {"altname": "XBTUSD", "status": "online"}},
            },
            "/0/public/OHLC": {
                "error": [],
                "result": {
                    "XXBTZUSD": [
                        [START, "100", "110", "90", "105", "102", "2", 5],
                        [START + 60, "100", "110", "90", "105", "101", "1", 3],
                        [START + 120, "100", "110", "90", "105", "101", "1", 1],
                    ],
                    "last": START + 60,
                },
            },
        })

    @pytest.mark.asyncio
    async def test_alias_resolution_and_quote_volume(self, transport):
        adapter = KrakenAdapter(transport=transport)
        await adapter.load_markets()

        series = await adapter.get_trades_data(BTC_USD, START, 1, 2)

        assert adapter.get_symbol_info(BTC_USD) == SymbolInfo("XBTUSD")
        assert series[0].price(0) == 102
        assert all(bucket.completed for bucket in series)
        assert transport.calls_to("/0/public/OHLC")[0]["since"] == START - 1

    @pytest.mark.asyncio
    async def test_candle_at_last_is_committed(self, transport):
        adapter = KrakenAdapter(transport=transport)
        await adapter.load_markets()

        series = await adapter.get_trades_data(BTC_USD, START, 1, 3)

        # `last` points at START + 60, the trailing candle is still forming
        assert [bucket.completed for bucket in series] == [True, True, False]

    @pytest.mark.asyncio
    async def test_error_list(self):
        transport = FakeTransport({"/0/public/OHLC": {"error": ["EQuery:Unknown asset pair"]}})

        with pytest.raises(FetchError, match="Unknown asset pair"):
            await KrakenAdapter(transport=transport).fetch_candles("XBTUSD", START, 1, 1)


class TestCoinbaseAdapter:
    """Tests for CoinbaseAdapter."""

    @pytest.mark.asyncio
    async def test_quote_volume_from_average_price(self):
        transport = FakeTransport({
            "/products": [
                {"id": "BTC-USD", "status": "online"},
                {"id": "ETH-USD", "status": "delisted"},
            ],
            "/candles": [[START, "90", "110", "100", "100", "2"]],
        })
        adapter = CoinbaseAdapter(transport=transport)
        await adapter.load_markets()

        series = await adapter.get_trades_data(BTC_USD, START, 5, 1)

        assert adapter.markets == frozenset({"BTC-USD"})
        assert series[0].price(0) == 100
        params = transport.calls_to("/products/BTC-USD/candles")[0]
        assert params["granularity"] == "300"
        assert params["start"] == "2023-11-14T22:10:00+00:00"


class TestGateAdapter:
    """Tests for GateAdapter."""

    @pytest.mark.asyncio
    async def test_window_closed_flag(self):
        transport = FakeTransport({
            "/api/v4/spot/currency_pairs": [
                {"id": "BTC_USDT", "trade_status": "tradable"},
                {"id": "ETH_USDT", "trade_status": "untradable"},
            ],
            "/api/v4/spot/candlesticks": [
                [str(START), "200", "100", "110", "90", "100", "2", "true"],
                [str(START + 60), "330", "110", "110", "110", "110", "3", "false"],
            ],
        })
        adapter = GateAdapter(transport=transport)
        await adapter.load_markets()

        series = await adapter.get_trades_data(BTC_USD, START, 1, 2)

        assert [b.price(0) for b in series] == [100, 110]
        assert [b.completed for b in series] == [True, False]
        params = transport.calls_to("/api/v4/spot/candlesticks")[0]
        assert params["from"] == START
        assert params["to"] == START + 60
