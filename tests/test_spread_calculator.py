"""
Tests for spread and profit calculation.
"""

import pytest
from decimal import Decimal

from cexdex.decimal_utils import quantize_percentage
from cexdex.engine.spread_calculator import compute_spread, passes_gas_ratio
from cexdex.errors import ComputationError
from cexdex.models import Direction, SpreadParams, TradingPair


ETH_USDT = TradingPair("ETH", "USDT")


def make_params(**overrides):
    values = dict(
        buy_fee_rate=Decimal("0.001"),
        sell_fee_rate=Decimal("0.003"),
        gas_cost=Decimal("0.10"),
        trade_size=Decimal("1"),
        venue_id="ethereum",
        pair=ETH_USDT,
        direction=Direction.CEX_TO_DEX,
    )
    values.update(overrides)
    return SpreadParams(**values)


def fixed_clock():
    return 1_700_000_000_000


class TestComputeSpread:
    """Tests for the spread formula."""

    def test_intermediate_amounts(self):
        """Every intermediate amount follows the cost/proceeds formula."""
        result = compute_spread(Decimal("100"), Decimal("101"), make_params(), clock=fixed_clock)

        assert result.buy_fee_amount == Decimal("0.1")
        assert result.total_buy_cost == Decimal("100.1")
        assert result.sell_fee_amount == Decimal("0.303")
        assert result.total_sell_proceeds == Decimal("100.697")
        assert result.raw_profit == Decimal("0.597")
        assert result.profit_after_gas == Decimal("0.497")
        assert result.computed_at_millis == fixed_clock()

    def test_profit_percentage_below_half_percent(self):
        """Ask 100 vs DEX 101 with default fees and gas stays under 0.5%."""
        result = compute_spread(Decimal("100"), Decimal("101"), make_params(), clock=fixed_clock)

        assert quantize_percentage(result.profit_percentage) == Decimal("0.4965")
        assert result.profit_percentage < Decimal("0.5")

    def test_profit_percentage_at_higher_dex_price(self):
        """Raising the DEX quote to 102 clears the threshold comfortably."""
        result = compute_spread(Decimal("100"), Decimal("102"), make_params(), clock=fixed_clock)

        assert result.profit_after_gas == Decimal("1.494")
        assert quantize_percentage(result.profit_percentage) == Decimal("1.4925")

    def test_trade_size_scales_amounts(self):
        """Amounts scale with trade size; gas does not."""
        result = compute_spread(
            Decimal("100"), Decimal("101"), make_params(trade_size=Decimal("2")), clock=fixed_clock
        )

        assert result.total_buy_cost == Decimal("200.2")
        assert result.raw_profit == Decimal("1.194")
        assert result.profit_after_gas == Decimal("1.094")

    def test_losing_trade_is_negative(self):
        """Prices inverted against fees give a negative profit."""
        result = compute_spread(Decimal("101"), Decimal("100"), make_params(), clock=fixed_clock)

        assert result.raw_profit < 0
        assert result.profit_percentage < 0

    def test_zero_buy_cost_raises(self):
        """A zero buy price cannot produce a percentage."""
        with pytest.raises(ComputationError):
            compute_spread(Decimal("0"), Decimal("101"), make_params(), clock=fixed_clock)

    def test_deterministic_with_fixed_clock(self):
        """Same inputs and clock value give equal results."""
        first = compute_spread(Decimal("100"), Decimal("101.5"), make_params(), clock=fixed_clock)
        second = compute_spread(Decimal("100"), Decimal("101.5"), make_params(), clock=fixed_clock)

        assert first == second

    def test_identification_is_carried_through(self):
        """Direction, venue and pair come from the params."""
        params = make_params(direction=Direction.DEX_TO_CEX, venue_id="arbitrum")
        result = compute_spread(Decimal("100"), Decimal("101"), params, clock=fixed_clock)

        assert result.direction == Direction.DEX_TO_CEX
        assert result.venue_id == "arbitrum"
        assert result.pair == ETH_USDT

    def test_float_prices_are_exact(self):
        """Floats go through str, so 0.1-style values stay exact."""
        result = compute_spread(0.1, 0.2, make_params(gas_cost=Decimal("0")), clock=fixed_clock)

        assert result.buy_price == Decimal("0.1")
        assert result.sell_price == Decimal("0.2")


class TestGasRatio:
    """Tests for the profit-to-gas check."""

    def test_disabled_when_zero(self):
        result = compute_spread(Decimal("100"), Decimal("100.5"), make_params(), clock=fixed_clock)
        assert passes_gas_ratio(result, Decimal("0"))
        assert passes_gas_ratio(result, None)

    def test_requires_multiple_of_gas(self):
        """Profit 0.497 against gas 0.1 passes 3x but not 5x."""
        result = compute_spread(Decimal("100"), Decimal("101"), make_params(), clock=fixed_clock)

        assert passes_gas_ratio(result, Decimal("3"))
        assert not passes_gas_ratio(result, Decimal("5"))
