"""
Tests for the opportunity scanner.
"""

import pytest
from decimal import Decimal

from cexdex.decimal_utils import MONEY_CONTEXT
from cexdex.engine.scanner import dex_price_cache_key
from cexdex.models import Direction, TradingPair


ETH_USDT = TradingPair("ETH", "USDT")


class TestScan:
    """Tests for OpportunityScanner.scan."""

    @pytest.mark.asyncio
    async def test_profitable_direction_is_published(self, scanner, ledger):
        """DEX above the CEX ask yields one CexToDex opportunity."""
        opportunities = await scanner.scan([ETH_USDT], ["ethereum"])

        assert len(opportunities) == 1
        opp = opportunities[0]
        assert opp.direction == Direction.CEX_TO_DEX
        assert opp.venue_id == "ethereum"
        assert opp.buy_price == Decimal("100")
        assert opp.sell_price == Decimal("102")
        assert opp.opportunity_id.startswith("opp_")
        assert ledger.current_snapshot() == tuple(opportunities)

    @pytest.mark.asyncio
    async def test_end_to_end_threshold_scenario(self, scanner, dex, cache, ledger):
        """A 101 DEX quote stays below 0.5%; 102 clears it."""
        dex.prices[("ethereum", "ETH", "USDT")] = Decimal("101")
        assert await scanner.scan([ETH_USDT], ["ethereum"]) == []
        assert len(ledger) == 0

        dex.prices[("ethereum", "ETH", "USDT")] = Decimal("102")
        cache.clear()
        opportunities = await scanner.scan([ETH_USDT], ["ethereum"])

        assert len(opportunities) == 1
        assert opportunities[0].profit_after_gas == Decimal("1.494")

    @pytest.mark.asyncio
    async def test_dex_to_cex_direction(self, scanner, cex, dex):
        """DEX well under the CEX bid yields a DexToCex opportunity."""
        cex.prices["ETHUSDT"] = (Decimal("103"), Decimal("103.1"))
        dex.prices[("ethereum", "ETH", "USDT")] = Decimal("100")

        opportunities = await scanner.scan([ETH_USDT], ["ethereum"])

        assert [o.direction for o in opportunities] == [Direction.DEX_TO_CEX]
        assert opportunities[0].buy_price == Decimal("100")
        assert opportunities[0].sell_price == Decimal("103")

    @pytest.mark.asyncio
    async def test_missing_cex_price_skips_and_clears_ledger(self, scanner, cex, ledger):
        """A combination with no CEX data is skipped; the ledger is still replaced."""
        await scanner.scan([ETH_USDT], ["ethereum"])
        assert len(ledger) == 1

        cex.prices.clear()
        opportunities = await scanner.scan([ETH_USDT], ["ethereum"])

        assert opportunities == []
        assert ledger.current_snapshot() == ()

    @pytest.mark.asyncio
    async def test_missing_dex_price_skips(self, scanner, dex):
        dex.prices.clear()
        assert await scanner.scan([ETH_USDT], ["ethereum"]) == []
        assert scanner.metrics["combinations_skipped"] == 1

    @pytest.mark.asyncio
    async def test_dex_failure_is_not_raised(self, scanner, dex):
        """An adapter error means no price this cycle, not a failed scan."""
        dex.quote_error = ConnectionError("rpc down")

        assert await scanner.scan([ETH_USDT], ["ethereum"]) == []

    @pytest.mark.asyncio
    async def test_non_positive_price_is_rejected(self, scanner, dex):
        dex.prices[("ethereum", "ETH", "USDT")] = Decimal("0")
        assert await scanner.scan([ETH_USDT], ["ethereum"]) == []

    @pytest.mark.asyncio
    async def test_threshold_is_strict(self, scanner, config):
        """Profit equal to the minimum is excluded; just above is included."""
        cex_to_dex, _ = scanner.evaluate(
            ETH_USDT, "ethereum", Decimal("99.9"), Decimal("100"), Decimal("102")
        )

        config.trading.minimum_profit_percentage = cex_to_dex.profit_percentage
        assert await scanner.scan([ETH_USDT], ["ethereum"]) == []

        config.trading.minimum_profit_percentage = MONEY_CONTEXT.subtract(
            cex_to_dex.profit_percentage, Decimal("1E-30")
        )
        assert len(await scanner.scan([ETH_USDT], ["ethereum"])) == 1

    @pytest.mark.asyncio
    async def test_stale_cex_quote_is_skipped(self, scanner, cex, config):
        now = 1_700_000_000_000
        cex.observed_at["ETHUSDT"] = now - config.scanner.max_quote_age_ms

        assert len(await scanner.scan([ETH_USDT], ["ethereum"])) == 1

        cex.observed_at["ETHUSDT"] = now - config.scanner.max_quote_age_ms - 1
        assert await scanner.scan([ETH_USDT], ["ethereum"]) == []
        assert scanner.metrics["combinations_skipped"] == 1

        config.scanner.max_quote_age_ms = 0
        assert len(await scanner.scan([ETH_USDT], ["ethereum"])) == 1

    @pytest.mark.asyncio
    async def test_ranking_is_descending_and_stable(self, scanner, config, dex):
        """Equal profits keep scan order (pairs outer, venues inner)."""
        config.trading.minimum_profit_percentage = Decimal("0")
        dex._venues = ["v1", "v2", "v3", "v4"]
        dex.prices = {
            ("v1", "ETH", "USDT"): Decimal("101.8"),
            ("v2", "ETH", "USDT"): Decimal("104"),
            ("v3", "ETH", "USDT"): Decimal("104"),
            ("v4", "ETH", "USDT"): Decimal("101"),
        }

        opportunities = await scanner.scan([ETH_USDT], dex.venues)

        assert [o.venue_id for o in opportunities] == ["v2", "v3", "v1", "v4"]
        assert opportunities[0].profit_percentage == opportunities[1].profit_percentage
        percentages = [o.profit_percentage for o in opportunities]
        assert percentages == sorted(percentages, reverse=True)

    @pytest.mark.asyncio
    async def test_cached_dex_price_avoids_requote(self, scanner, dex):
        await scanner.scan([ETH_USDT], ["ethereum"])
        await scanner.scan([ETH_USDT], ["ethereum"])

        assert len(dex.quote_calls) == 1
        assert dex.quote_calls[0] == ("ethereum", "ETH", "USDT", Decimal("1"))

    @pytest.mark.asyncio
    async def test_failed_quote_is_not_cached(self, scanner, dex, cache):
        dex.quote_error = ConnectionError("rpc down")
        await scanner.scan([ETH_USDT], ["ethereum"])

        assert cache.get(dex_price_cache_key("ethereum", "ETH", "USDT")) is None


class TestDexPriceCacheKey:

    def test_key_format(self):
        assert dex_price_cache_key("arbitrum", "WBTC", "USDT") == "dexPrice:arbitrum:WBTC-USDT"
