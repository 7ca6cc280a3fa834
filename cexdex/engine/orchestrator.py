"""
Two-leg execution of a cross-venue opportunity.

The legs cannot be made atomic. Leg 2 is only submitted after leg 1 has
returned; when leg 2 fails the leg 1 position is real and stays open, and
the outcome reports it for manual resolution. Nothing is retried or rolled
back here.
"""

import asyncio
from decimal import Decimal
from typing import Awaitable

from cexdex.config import BotConfig
from cexdex.decimal_utils import ZERO, decimal_to_str
from cexdex.logger import get_logger, trade_logger
from cexdex.models import (
    Direction, ExecutionOutcome, ExecutionState, FailureStage,
    LegResult, Opportunity, Side, now_millis
)
from cexdex.venues.base import CexAdapter, DexAdapter


logger = get_logger("orchestrator")


class ExecutionOrchestrator:
    """
    Sequences the buy and sell legs of one opportunity.

    Direction dispatch:
    - CexToDex: leg 1 = CEX market buy, leg 2 = DEX sell swap
    - DexToCex: leg 1 = DEX buy swap, leg 2 = CEX market sell

    A single-permit lock guards ``execute`` so manual and autonomous
    executions never overlap.
    """

    def __init__(self, config: BotConfig, cex: CexAdapter, dex: DexAdapter):
        self.config = config
        self.cex = cex
        self.dex = dex
        self._lock = asyncio.Lock()

        # Execution metrics
        self._attempts = 0
        self._succeeded = 0
        self._failed_leg1 = 0
        self._failed_leg2 = 0

    async def execute(self, opportunity: Opportunity) -> ExecutionOutcome:
        """
        Execute both legs of an opportunity.

        Never raises for venue or adapter failures; they are captured in the
        returned outcome. Cancellation still propagates.
        """
        async with self._lock:
            outcome = await self._execute_locked(opportunity)

        self._record(outcome)
        trade_logger.log_execution_outcome(outcome)
        return outcome

    async def _execute_locked(self, opportunity: Opportunity) -> ExecutionOutcome:
        outcome = ExecutionOutcome(opportunity=opportunity)
        self._attempts += 1

        logger.info(
            "Executing arbitrage opportunity",
            opportunity_id=opportunity.opportunity_id,
            direction=opportunity.direction.value,
            venue=opportunity.venue_id,
            pair=str(opportunity.pair),
        )

        if opportunity.direction == Direction.CEX_TO_DEX:
            leg1_venue, leg2_venue = self.cex.venue_id, opportunity.venue_id
        else:
            leg1_venue, leg2_venue = opportunity.venue_id, self.cex.venue_id

        # Quantity normalization happens before anything is submitted
        try:
            quantity = self._normalized_quantity(opportunity, opportunity.trade_size)
        except Exception as e:
            return self._fail(outcome, FailureStage.LEG1, leg1_venue, f"Quantity normalization failed: {e}")

        if quantity <= ZERO:
            return self._fail(
                outcome,
                FailureStage.LEG1,
                leg1_venue,
                f"Trade size {opportunity.trade_size} rounds to zero",
            )

        # Leg 1
        outcome.state = ExecutionState.LEG1_SUBMITTED
        trade_logger.log_leg_submitted(
            opportunity.opportunity_id, 1, leg1_venue, Side.BUY.value, decimal_to_str(quantity)
        )
        try:
            outcome.leg1_result = await self._buy_leg(opportunity, quantity)
        except Exception as e:
            return self._fail(outcome, FailureStage.LEG1, leg1_venue, str(e) or type(e).__name__)

        # Leg 2 sells what leg 1 actually bought, never the requested size
        filled = outcome.leg1_result.filled_quantity
        try:
            if opportunity.direction == Direction.DEX_TO_CEX:
                sell_quantity = self._normalized_quantity(opportunity, filled)
            else:
                sell_quantity = filled
        except Exception as e:
            return self._fail(outcome, FailureStage.LEG2, leg2_venue, f"Quantity normalization failed: {e}")

        if sell_quantity <= ZERO:
            return self._fail(
                outcome,
                FailureStage.LEG2,
                leg2_venue,
                f"Leg 1 fill {decimal_to_str(filled)} leaves nothing to sell",
            )

        if sell_quantity != quantity:
            logger.warning(
                "Leg 1 partially filled, sizing leg 2 to the fill",
                opportunity_id=opportunity.opportunity_id,
                requested=decimal_to_str(quantity),
                filled=decimal_to_str(filled),
                sell_quantity=decimal_to_str(sell_quantity),
            )

        outcome.state = ExecutionState.LEG2_SUBMITTED
        trade_logger.log_leg_submitted(
            opportunity.opportunity_id, 2, leg2_venue, Side.SELL.value, decimal_to_str(sell_quantity)
        )
        try:
            outcome.leg2_result = await self._sell_leg(opportunity, sell_quantity)
        except Exception as e:
            return self._fail(outcome, FailureStage.LEG2, leg2_venue, str(e) or type(e).__name__)

        outcome.state = ExecutionState.SETTLED
        outcome.succeeded = True
        outcome.finished_at_millis = now_millis()
        return outcome

    def _normalized_quantity(self, opportunity: Opportunity, quantity: Decimal) -> Decimal:
        symbol = self.cex.symbol_for(opportunity.pair)
        return self.cex.normalize_quantity(symbol, quantity)

    def _dex_swap(self, opportunity: Opportunity, side: Side, quantity: Decimal) -> Awaitable[LegResult]:
        pair = opportunity.pair
        return self.dex.swap(
            opportunity.venue_id,
            side,
            pair.base,
            pair.quote,
            quantity,
            self.config.trading.max_slippage_percentage,
        )

    def _buy_leg(self, opportunity: Opportunity, quantity: Decimal) -> Awaitable[LegResult]:
        if opportunity.direction == Direction.CEX_TO_DEX:
            return self.cex.market_buy(self.cex.symbol_for(opportunity.pair), quantity)
        return self._dex_swap(opportunity, Side.BUY, quantity)

    def _sell_leg(self, opportunity: Opportunity, quantity: Decimal) -> Awaitable[LegResult]:
        if opportunity.direction == Direction.CEX_TO_DEX:
            return self._dex_swap(opportunity, Side.SELL, quantity)
        return self.cex.market_sell(self.cex.symbol_for(opportunity.pair), quantity)

    def _fail(
        self,
        outcome: ExecutionOutcome,
        stage: FailureStage,
        venue: str,
        error: str,
    ) -> ExecutionOutcome:
        outcome.state = ExecutionState.FAILED
        outcome.succeeded = False
        outcome.failure_stage = stage
        outcome.error = error
        outcome.finished_at_millis = now_millis()

        trade_logger.log_leg_failed(
            outcome.opportunity.opportunity_id,
            1 if stage == FailureStage.LEG1 else 2,
            venue,
            error,
        )
        if stage == FailureStage.LEG2:
            logger.error(
                "One-sided position left open; resolve manually",
                opportunity_id=outcome.opportunity.opportunity_id,
                leg1_venue=outcome.leg1_result.venue_id if outcome.leg1_result else None,
                leg1_ref=outcome.leg1_result.reference if outcome.leg1_result else None,
                quantity=decimal_to_str(outcome.leg1_result.filled_quantity) if outcome.leg1_result else None,
            )
        return outcome

    def _record(self, outcome: ExecutionOutcome) -> None:
        if outcome.succeeded:
            self._succeeded += 1
        elif outcome.failure_stage == FailureStage.LEG1:
            self._failed_leg1 += 1
        elif outcome.failure_stage == FailureStage.LEG2:
            self._failed_leg2 += 1

    @property
    def metrics(self) -> dict:
        """Get execution metrics."""
        return {
            "attempts": self._attempts,
            "succeeded": self._succeeded,
            "failed_leg1": self._failed_leg1,
            "failed_leg2": self._failed_leg2,
        }
