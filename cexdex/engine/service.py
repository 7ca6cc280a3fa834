"""
Arbitrage service: the long-lived object that owns the engine state.

Flow:
1. Connect the CEX and DEX adapters
2. Scan every pair x DEX venue for round-trip spreads
3. Publish the ranked snapshot to the ledger
4. Execute threshold-beating opportunities one at a time
5. Sleep and repeat
"""

import asyncio
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from cexdex.cache import PriceCache
from cexdex.config import BotConfig
from cexdex.errors import AdapterInitializationError, DataUnavailableError, ServiceNotInitializedError
from cexdex.logger import get_logger
from cexdex.models import ExecutionOutcome, Opportunity, ServiceStatus, TradingPair
from cexdex.engine.ledger import OpportunityLedger
from cexdex.engine.orchestrator import ExecutionOrchestrator
from cexdex.engine.scanner import OpportunityScanner
from cexdex.engine.scheduler import BackoffPolicy, ScanLoopScheduler
from cexdex.engine.spread_calculator import passes_gas_ratio
from cexdex.venues.base import CexAdapter, DexAdapter


logger = get_logger("service")


class ArbitrageService:
    """
    The main orchestrator for the CEX/DEX arbitrage bot.

    All collaborators are injected so tests can substitute both venue
    adapters. Scans (autonomous or manual) are serialized by a cycle lock,
    making the scanner the ledger's only writer at any time; executions are
    additionally serialized by the orchestrator's own lock.
    """

    def __init__(
        self,
        config: BotConfig,
        cex: CexAdapter,
        dex: DexAdapter,
        cache: Optional[PriceCache] = None,
        ledger: Optional[OpportunityLedger] = None,
    ):
        self.config = config
        self.cex = cex
        self.dex = dex
        self.cache = cache or PriceCache(default_ttl_seconds=config.scanner.price_cache_ttl_seconds)
        self.ledger = ledger or OpportunityLedger()

        self.scanner = OpportunityScanner(config, cex, dex, self.cache, self.ledger)
        self.orchestrator = ExecutionOrchestrator(config, cex, dex)
        self.scheduler = ScanLoopScheduler(
            cycle=self.run_cycle,
            backoff=BackoffPolicy(
                normal_seconds=config.scanner.scan_interval_ms / 1000,
                error_seconds=config.scanner.error_backoff_ms / 1000,
            ),
        )

        self._cycle_lock = asyncio.Lock()
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def running(self) -> bool:
        return self.scheduler.is_running

    async def initialize(self) -> None:
        """
        Connect both venue adapters.

        Raises:
            AdapterInitializationError: If either adapter fails to connect
        """
        logger.info("Initializing Arbitrage Service")

        for name, adapter in (("cex", self.cex), ("dex", self.dex)):
            try:
                await adapter.connect()
            except Exception as e:
                logger.error("Failed to initialize exchange adapter", adapter=name, error=str(e))
                raise AdapterInitializationError(f"Failed to initialize {name} adapter: {e}") from e

        if not self.venues:
            raise AdapterInitializationError("No DEX venues configured")

        await self._log_balances()

        self._initialized = True
        logger.info(
            "✅ Arbitrage Service initialized",
            pairs=[str(p) for p in self.pairs],
            venues=self.venues,
            paper=self.config.is_paper_trading,
        )

    async def _log_balances(self) -> None:
        """Log the CEX balance of every traded asset; a failed lookup is not fatal."""
        assets = []
        for pair in self.pairs:
            for asset in (pair.base, pair.quote):
                if asset not in assets:
                    assets.append(asset)

        for asset in assets:
            try:
                balance = await self.cex.get_balance(asset)
            except Exception as e:
                logger.warning("Could not fetch balance", asset=asset, error=str(e))
                continue
            logger.info(
                "CEX balance",
                asset=asset,
                free=str(balance["free"]),
                locked=str(balance["locked"]),
            )

    async def start(self) -> None:
        """Start the autonomous scan loop."""
        if not self._initialized:
            raise ServiceNotInitializedError("Arbitrage Service not initialized")

        if self.running:
            logger.warning("Arbitrage Service already running")
            return

        logger.info("🚀 Starting Arbitrage Service")
        self.scheduler.start()

    async def stop(self) -> None:
        """Stop the loop after its current iteration."""
        logger.info("Stopping Arbitrage Service")
        self.scheduler.stop()
        await self.scheduler.wait_stopped()

    async def shutdown(self) -> None:
        """Stop the loop and disconnect the adapters."""
        await self.stop()
        for adapter in (self.cex, self.dex):
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.warning("Error disconnecting adapter", adapter=type(adapter).__name__, error=str(e))
        logger.info("Arbitrage Service stopped")

    # ------------------------------------------------------------------
    # Engine
    # ------------------------------------------------------------------

    @property
    def pairs(self) -> List[TradingPair]:
        return self.config.trading.pairs

    @property
    def venues(self) -> List[str]:
        return list(self.dex.venues)

    async def run_cycle(self) -> List[ExecutionOutcome]:
        """One loop iteration: scan, then execute qualifying opportunities in order."""
        async with self._cycle_lock:
            opportunities = await self.scanner.scan(self.pairs, self.venues)

            outcomes = []
            for opportunity in opportunities:
                if not self.should_execute(opportunity):
                    continue
                outcomes.append(await self.orchestrator.execute(opportunity))
            return outcomes

    def should_execute(self, opportunity: Opportunity) -> bool:
        """Threshold check plus the optional profit-to-gas ratio check."""
        if opportunity.profit_percentage <= self.config.trading.minimum_profit_percentage:
            return False

        if not passes_gas_ratio(opportunity, self.config.trading.min_profit_to_gas_ratio):
            logger.debug(
                "Opportunity rejected: profit too small relative to gas cost",
                opportunity_id=opportunity.opportunity_id,
                profit_after_gas=str(opportunity.profit_after_gas),
                gas_cost=str(opportunity.gas_cost),
            )
            return False

        return True

    # ------------------------------------------------------------------
    # Public API consumed by the HTTP surface
    # ------------------------------------------------------------------

    def get_current_opportunities(self) -> Sequence[Opportunity]:
        return self.ledger.current_snapshot()

    async def trigger_scan(self) -> List[Opportunity]:
        """Synchronous re-scan, serialized against the loop's cycles."""
        async with self._cycle_lock:
            return await self.scanner.scan(self.pairs, self.venues)

    async def execute_by_id(self, opportunity_id: str) -> ExecutionOutcome:
        """
        Execute an opportunity from the current snapshot.

        Raises:
            OpportunityNotFound: If the id is not in the current snapshot
        """
        opportunity = self.ledger.find_by_identifier(opportunity_id)
        return await self.orchestrator.execute(opportunity)

    def status(self) -> ServiceStatus:
        return ServiceStatus(
            running=self.running,
            initialized=self._initialized,
            opportunity_count=len(self.ledger),
        )

    def get_cex_prices(self, symbol: str) -> Dict[str, Decimal]:
        """
        Best bid and ask for a CEX symbol.

        Raises:
            DataUnavailableError: If either side is missing
        """
        symbol = symbol.upper()
        bid = self.cex.best_bid(symbol)
        ask = self.cex.best_ask(symbol)
        if bid is None or ask is None:
            raise DataUnavailableError(self.cex.venue_id, symbol, "Price not found")
        return {"bid": bid, "ask": ask}

    async def get_dex_price(self, venue_id: str, base_token: str, quote_token: str) -> Decimal:
        """DEX price through the scanner cache; raises DataUnavailableError on a miss."""
        base_token, quote_token = base_token.upper(), quote_token.upper()
        price = await self.scanner.get_dex_price(venue_id, base_token, quote_token)
        if price is None:
            raise DataUnavailableError(venue_id, f"{base_token}-{quote_token}", "Price not found")
        return price

    @property
    def metrics(self) -> dict:
        return {
            "scanner": self.scanner.metrics,
            "orchestrator": self.orchestrator.metrics,
            "scheduler": self.scheduler.metrics,
        }
