"""
Tests for the venue adapters that run without network access.
"""

import json
import pytest
from decimal import Decimal
from types import SimpleNamespace

from cexdex.errors import ComputationError, ConfigurationError, ExecutionLegError
from cexdex.models import Side, TradingPair
from cexdex.venues.binance import BinanceAdapter
from cexdex.venues.tokens import get_token_address, get_token_decimals, onchain_symbol
from cexdex.venues.uniswap import UniswapAdapter, from_base_units, to_base_units


@pytest.fixture
def binance(config):
    return BinanceAdapter(config, ["ETHUSDT"])


class TestBinanceAdapter:

    def test_symbols_default_to_configured_pairs(self, config):
        adapter = BinanceAdapter(config)
        assert adapter.symbol_for(TradingPair("ETH", "USDT")) == "ETHUSDT"
        assert adapter._symbols == ["ETHUSDT"]

    def test_live_mode_requires_keys(self, config):
        config.development.paper_trading = False
        with pytest.raises(ConfigurationError):
            BinanceAdapter(config, ["ETHUSDT"])

    def test_combined_stream_message_updates_prices(self, binance):
        binance._handle_ws_message(json.dumps({
            "stream": "ethusdt@bookTicker",
            "data": {"s": "ETHUSDT", "b": "2000.10", "a": "2000.20"},
        }))

        assert binance.best_bid("ETHUSDT") == Decimal("2000.10")
        assert binance.best_ask("ETHUSDT") == Decimal("2000.20")

    def test_unknown_symbol_and_garbage_are_ignored(self, binance):
        binance._handle_ws_message(json.dumps({"s": "DOGEUSDT", "b": "1", "a": "2"}))
        binance._handle_ws_message("not json")

        assert binance.best_bid("DOGEUSDT") is None
        assert binance.best_bid("ETHUSDT") is None

    def test_zero_side_means_no_price(self, binance):
        binance._update_price("ETHUSDT", "0.00000000", "2000")

        assert binance.best_bid("ETHUSDT") is None
        assert binance.best_ask("ETHUSDT") == Decimal("2000")

    def test_normalize_quantity(self, binance):
        binance._step_sizes["ETHUSDT"] = Decimal("0.0001")

        assert binance.normalize_quantity("ETHUSDT", Decimal("1.23456")) == Decimal("1.2345")
        with pytest.raises(ComputationError):
            binance.normalize_quantity("BTCUSDT", Decimal("1"))

    def test_signature_is_hmac_sha256(self, config):
        config.binance.api_secret = "secret"
        adapter = BinanceAdapter(config, ["ETHUSDT"])

        signed = adapter._sign({"symbol": "ETHUSDT", "timestamp": 1})

        assert signed.startswith("symbol=ETHUSDT&timestamp=1&signature=")
        assert len(signed.rsplit("=", 1)[1]) == 64

    @pytest.mark.asyncio
    async def test_paper_orders_fill_at_best_price(self, binance):
        binance._update_price("ETHUSDT", "1999", "2001")

        buy = await binance.market_buy("ETHUSDT", Decimal("0.5"))
        sell = await binance.market_sell("ETHUSDT", Decimal("0.5"))

        assert buy.paper and buy.average_price == Decimal("2001")
        assert sell.side == Side.SELL and sell.average_price == Decimal("1999")

    @pytest.mark.asyncio
    async def test_paper_order_without_price_fails(self, binance):
        with pytest.raises(ExecutionLegError):
            await binance.market_buy("ETHUSDT", Decimal("1"))

    def test_quote_observed_at_tracks_updates(self, binance):
        assert binance.quote_observed_at("ETHUSDT") is None

        binance._update_price("ETHUSDT", "1999", "2001")

        assert binance.quote_observed_at("ETHUSDT") > 0

    @pytest.mark.asyncio
    async def test_expired_order_with_fill_is_a_position(self, config, monkeypatch):
        """A market order that expires after filling part is still a fill."""
        config.development.paper_trading = False
        config.binance.api_key = "key"
        config.binance.api_secret = "secret"
        adapter = BinanceAdapter(config, ["ETHUSDT"])

        async def fake_request(method, path, params):
            return {
                "orderId": 7,
                "status": "EXPIRED",
                "executedQty": "0.40000000",
                "cummulativeQuoteQty": "800.00000000",
            }

        monkeypatch.setattr(adapter, "_signed_request", fake_request)

        result = await adapter.market_buy("ETHUSDT", Decimal("1"))

        assert result.reference == "7"
        assert result.filled_quantity == Decimal("0.4")
        assert result.average_price == Decimal("2000")

    @pytest.mark.asyncio
    async def test_unfilled_order_fails(self, config, monkeypatch):
        config.development.paper_trading = False
        config.binance.api_key = "key"
        config.binance.api_secret = "secret"
        adapter = BinanceAdapter(config, ["ETHUSDT"])

        async def fake_request(method, path, params):
            return {"orderId": 8, "status": "EXPIRED", "executedQty": "0", "cummulativeQuoteQty": "0"}

        monkeypatch.setattr(adapter, "_signed_request", fake_request)

        with pytest.raises(ExecutionLegError):
            await adapter.market_sell("ETHUSDT", Decimal("1"))


class TestUniswapAdapter:

    def test_venues_are_networks_with_rpc(self, config):
        adapter = UniswapAdapter(config)
        assert adapter.venues == ["ethereum"]

    def test_live_mode_requires_wallet(self, config):
        config.development.paper_trading = False
        with pytest.raises(ConfigurationError):
            UniswapAdapter(config)

    @pytest.mark.asyncio
    async def test_quote_unconnected_network_is_none(self, config):
        adapter = UniswapAdapter(config)
        assert await adapter.quote("polygon", "ETH", "USDT") is None

    @pytest.mark.asyncio
    async def test_swap_on_unconnected_network_fails(self, config):
        adapter = UniswapAdapter(config)
        with pytest.raises(ExecutionLegError):
            await adapter.swap("ethereum", Side.BUY, "ETH", "USDT", Decimal("1"), Decimal("0.5"))

    def test_base_unit_conversion(self):
        assert to_base_units(Decimal("1.5"), 6) == 1_500_000
        assert to_base_units(Decimal("0.0000000001"), 8) == 0
        assert from_base_units(2_500_000, 6) == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_sent_transaction_reference_is_0x_hex(self, config):
        adapter = UniswapAdapter(config)

        class FakeEth:
            async def get_transaction_count(self, address, block):
                return 3

            async def send_raw_transaction(self, raw):
                return b"\x12\x34"

            async def wait_for_transaction_receipt(self, tx_hash, timeout):
                return {"status": 1}

            @property
            def gas_price(self):
                return self._value(100)

            @property
            def chain_id(self):
                return self._value(1)

            async def _value(self, value):
                return value

        class FakeCall:
            async def build_transaction(self, tx):
                self.tx = tx
                return tx

        adapter._web3["ethereum"] = SimpleNamespace(eth=FakeEth())
        adapter._account = SimpleNamespace(sign_transaction=lambda tx: SimpleNamespace(raw_transaction=b"raw"))
        call = FakeCall()

        assert await adapter._send("ethereum", call) == "0x1234"
        assert call.tx["nonce"] == 3
        assert call.tx["gasPrice"] == 110


class TestTokens:

    def test_native_assets_map_to_wrapped(self):
        assert onchain_symbol("eth") == "WETH"
        assert onchain_symbol("LINK") == "LINK"
        assert get_token_address("ethereum", "ETH") == get_token_address("ethereum", "WETH")

    def test_unknown_token_or_network(self):
        assert get_token_address("ethereum", "DOGE") is None
        assert get_token_address("base", "WETH") is None

    def test_decimals(self):
        assert get_token_decimals("USDT") == 6
        assert get_token_decimals("WBTC") == 8
        assert get_token_decimals("ETH") == 18
        assert get_token_decimals("UNKNOWN") == 18
