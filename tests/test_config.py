"""
Tests for configuration parsing.
"""

import pytest
from decimal import Decimal
from pydantic import ValidationError

from cexdex.config import FeeConfig, NetworkConfig, ScannerConfig, TradingConfig, BotConfig
from cexdex.models import TradingPair


class TestTradingConfig:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TRADING_PAIRS", raising=False)
        cfg = TradingConfig(_env_file=None)

        assert cfg.minimum_profit_percentage == Decimal("0.5")
        assert cfg.max_slippage_percentage == Decimal("0.5")
        assert cfg.trade_size == Decimal("1")
        assert cfg.pairs == [
            TradingPair("ETH", "USDT"),
            TradingPair("WBTC", "USDT"),
            TradingPair("LINK", "USDT"),
        ]

    def test_pairs_keep_order_and_drop_duplicates(self, monkeypatch):
        monkeypatch.setenv("TRADING_PAIRS", "link-usdt, ETH-USDT,LINK-USDT,")
        cfg = TradingConfig(_env_file=None)

        assert cfg.pairs == [TradingPair("LINK", "USDT"), TradingPair("ETH", "USDT")]

    def test_invalid_pair_rejected(self, monkeypatch):
        monkeypatch.setenv("TRADING_PAIRS", "ETHUSDT")
        with pytest.raises(ValidationError):
            TradingConfig(_env_file=None)

    def test_percentage_range(self, monkeypatch):
        monkeypatch.setenv("MINIMUM_PROFIT_PERCENTAGE", "150")
        with pytest.raises(ValidationError):
            TradingConfig(_env_file=None)

    def test_trade_size_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("TRADE_SIZE", "0")
        with pytest.raises(ValidationError):
            TradingConfig(_env_file=None)

    def test_decimal_from_env_is_exact(self, monkeypatch):
        monkeypatch.setenv("MINIMUM_PROFIT_PERCENTAGE", "0.1")
        cfg = TradingConfig(_env_file=None)
        assert cfg.minimum_profit_percentage == Decimal("0.1")


class TestFeeConfig:

    def test_gas_costs_from_json(self, monkeypatch):
        monkeypatch.setenv("GAS_COSTS", '{"Ethereum": "15", "base": 0.02}')
        cfg = FeeConfig(_env_file=None)

        assert cfg.gas_cost_for("ethereum") == Decimal("15")
        assert cfg.gas_cost_for("base") == Decimal("0.02")
        assert cfg.gas_cost_for("polygon") == cfg.default_gas_cost

    def test_default_gas_costs(self, monkeypatch):
        monkeypatch.delenv("GAS_COSTS", raising=False)
        cfg = FeeConfig(_env_file=None)

        assert cfg.gas_cost_for("ethereum") == Decimal("20")
        assert cfg.gas_cost_for("polygon") == Decimal("0.05")

    def test_fee_rate_bounds(self, monkeypatch):
        monkeypatch.setenv("DEX_FEE", "1.5")
        with pytest.raises(ValidationError):
            FeeConfig(_env_file=None)


class TestOtherSections:

    def test_enabled_networks_follow_rpc_urls(self, monkeypatch):
        monkeypatch.setenv("ETH_MAINNET_RPC_URL", "http://eth")
        monkeypatch.setenv("POLYGON_RPC_URL", "http://polygon")
        monkeypatch.delenv("ARBITRUM_RPC_URL", raising=False)
        monkeypatch.delenv("OPTIMISM_RPC_URL", raising=False)
        cfg = NetworkConfig(_env_file=None)

        assert cfg.enabled_networks() == ["ethereum", "polygon"]
        assert cfg.rpc_url("polygon") == "http://polygon"

    def test_negative_interval_rejected(self, monkeypatch):
        monkeypatch.setenv("SCAN_INTERVAL_MS", "-1")
        with pytest.raises(ValidationError):
            ScannerConfig(_env_file=None)

    def test_bot_config_flags(self):
        cfg = BotConfig()
        assert cfg.is_paper_trading is True
        assert cfg.is_debug is True
