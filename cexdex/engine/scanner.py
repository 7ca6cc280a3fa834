"""
Opportunity scanner.

Fans out over every configured pair and DEX venue, prices both directions of
the round trip and produces a ranked snapshot of threshold-beating results.
"""

import time
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from cexdex.cache import PriceCache
from cexdex.config import BotConfig
from cexdex.decimal_utils import ZERO, to_decimal
from cexdex.errors import ComputationError
from cexdex.logger import get_logger, trade_logger
from cexdex.models import (
    Direction, Opportunity, SpreadParams, SpreadResult, TradingPair, now_millis
)
from cexdex.engine.ledger import OpportunityLedger
from cexdex.engine.spread_calculator import compute_spread
from cexdex.venues.base import CexAdapter, DexAdapter


logger = get_logger("scanner")


def dex_price_cache_key(venue_id: str, base_token: str, quote_token: str) -> str:
    return f"dexPrice:{venue_id}:{base_token}-{quote_token}"


class OpportunityScanner:
    """
    Compares CEX bid/ask with DEX quotes for every pair x venue combination.

    Each call to ``scan`` produces a fresh, fully materialized snapshot and
    swaps it into the ledger once the scan is complete.
    """

    def __init__(
        self,
        config: BotConfig,
        cex: CexAdapter,
        dex: DexAdapter,
        cache: PriceCache,
        ledger: OpportunityLedger,
        clock: Callable[[], int] = now_millis,
    ):
        self.config = config
        self.cex = cex
        self.dex = dex
        self.cache = cache
        self.ledger = ledger
        self._clock = clock

        # Tracking
        self._scans_completed = 0
        self._combinations_skipped = 0

    @property
    def minimum_profit_percentage(self) -> Decimal:
        return self.config.trading.minimum_profit_percentage

    async def scan(
        self,
        pairs: Sequence[TradingPair],
        venues: Sequence[str],
    ) -> List[Opportunity]:
        """
        Scan all pair x venue combinations.

        Iteration order is pairs outer, venues inner, CexToDex before
        DexToCex; the stable ranking keeps that order among equal profits.

        Returns:
            Opportunities ranked by profit percentage, descending
        """
        start = time.perf_counter()
        retained: List[SpreadResult] = []
        priced = 0

        for pair in pairs:
            for venue_id in venues:
                prices = await self._fetch_prices(pair, venue_id)
                if prices is None:
                    self._combinations_skipped += 1
                    continue
                priced += 1

                cex_bid, cex_ask, dex_price = prices
                try:
                    for result in self.evaluate(pair, venue_id, cex_bid, cex_ask, dex_price):
                        if result.profit_percentage > self.minimum_profit_percentage:
                            retained.append(result)
                except ComputationError as e:
                    self._combinations_skipped += 1
                    logger.error(
                        "Spread computation failed",
                        pair=str(pair),
                        venue=venue_id,
                        error=str(e),
                    )

        # sorted() is stable, also with reverse=True
        ranked = sorted(retained, key=lambda r: r.profit_percentage, reverse=True)
        opportunities = [Opportunity.from_spread(result) for result in ranked]

        self.ledger.replace(opportunities)
        self._scans_completed += 1

        for opportunity in opportunities:
            trade_logger.log_opportunity_detected(opportunity)

        trade_logger.log_scan_completed(
            pairs=len(pairs),
            venues=len(venues),
            combinations_priced=priced,
            opportunities=len(opportunities),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        return opportunities

    def evaluate(
        self,
        pair: TradingPair,
        venue_id: str,
        cex_bid: Decimal,
        cex_ask: Decimal,
        dex_price: Decimal,
    ) -> Tuple[SpreadResult, SpreadResult]:
        """Compute both directions for one combination, CexToDex first."""
        fees = self.config.fees
        gas_cost = fees.gas_cost_for(venue_id)
        trade_size = self.config.trading.trade_size

        # 1. Buy on CEX at the ask, sell on DEX
        cex_to_dex = compute_spread(
            cex_ask,
            dex_price,
            SpreadParams(
                buy_fee_rate=fees.cex_taker_fee,
                sell_fee_rate=fees.dex_fee,
                gas_cost=gas_cost,
                trade_size=trade_size,
                venue_id=venue_id,
                pair=pair,
                direction=Direction.CEX_TO_DEX,
            ),
            clock=self._clock,
        )

        # 2. Buy on DEX, sell on CEX at the bid
        dex_to_cex = compute_spread(
            dex_price,
            cex_bid,
            SpreadParams(
                buy_fee_rate=fees.dex_fee,
                sell_fee_rate=fees.cex_taker_fee,
                gas_cost=gas_cost,
                trade_size=trade_size,
                venue_id=venue_id,
                pair=pair,
                direction=Direction.DEX_TO_CEX,
            ),
            clock=self._clock,
        )

        return cex_to_dex, dex_to_cex

    async def _fetch_prices(
        self,
        pair: TradingPair,
        venue_id: str,
    ) -> Optional[Tuple[Decimal, Decimal, Decimal]]:
        """CEX bid/ask and DEX price, or None when any side is unavailable."""
        symbol = self.cex.symbol_for(pair)
        cex_bid = self.cex.best_bid(symbol)
        cex_ask = self.cex.best_ask(symbol)

        if cex_bid is None or cex_ask is None:
            logger.debug("No CEX prices available", symbol=symbol)
            return None

        max_age = self.config.scanner.max_quote_age_ms
        observed_at = self.cex.quote_observed_at(symbol)
        if max_age and observed_at is not None and self._clock() - observed_at > max_age:
            logger.warning(
                "Stale CEX quote, skipping",
                symbol=symbol,
                age_ms=self._clock() - observed_at,
            )
            return None

        dex_price = await self.get_dex_price(venue_id, pair.base, pair.quote)
        if dex_price is None:
            logger.debug("No DEX price available", venue=venue_id, pair=str(pair))
            return None

        try:
            cex_bid, cex_ask, dex_price = (to_decimal(p) for p in (cex_bid, cex_ask, dex_price))
        except ComputationError as e:
            logger.warning("Malformed price", symbol=symbol, venue=venue_id, error=str(e))
            return None

        if cex_bid <= ZERO or cex_ask <= ZERO or dex_price <= ZERO:
            logger.warning(
                "Rejecting non-positive price",
                symbol=symbol,
                venue=venue_id,
                cex_bid=str(cex_bid),
                cex_ask=str(cex_ask),
                dex_price=str(dex_price),
            )
            return None

        return cex_bid, cex_ask, dex_price

    async def get_dex_price(
        self,
        venue_id: str,
        base_token: str,
        quote_token: str,
    ) -> Optional[Decimal]:
        """
        DEX price with cache-or-fetch semantics.

        A cache miss followed by an adapter failure means no price this
        cycle; it is logged, not raised.
        """
        cache_key = dex_price_cache_key(venue_id, base_token, quote_token)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            price = await self.dex.quote(
                venue_id,
                base_token,
                quote_token,
                self.config.trading.trade_size,
            )
        except Exception as e:
            logger.warning(
                "Failed to get DEX price",
                venue=venue_id,
                base=base_token,
                quote=quote_token,
                error=str(e),
            )
            return None

        if price is not None:
            self.cache.set(cache_key, price, self.config.scanner.price_cache_ttl_seconds)
        return price

    @property
    def metrics(self) -> dict:
        """Get scanner metrics."""
        return {
            "scans_completed": self._scans_completed,
            "combinations_skipped": self._combinations_skipped,
            "cache": self.cache.stats,
        }
