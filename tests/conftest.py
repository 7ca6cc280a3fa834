"""
Pytest configuration and shared fixtures.
"""

import os
from decimal import Decimal

import pytest

# Set test environment
os.environ["PAPER_TRADING"] = "true"
os.environ["DEBUG_MODE"] = "true"
os.environ["TRADING_PAIRS"] = "ETH-USDT"
os.environ["ETH_MAINNET_RPC_URL"] = "http://localhost:8545"
os.environ["BINANCE_API_KEY"] = ""
os.environ["WALLET_PRIVATE_KEY"] = ""

from cexdex.cache import PriceCache
from cexdex.config import BotConfig
from cexdex.decimal_utils import round_down_to_step
from cexdex.engine.ledger import OpportunityLedger
from cexdex.engine.scanner import OpportunityScanner
from cexdex.errors import ExecutionLegError
from cexdex.models import LegResult, Side
from cexdex.venues.base import CexAdapter, DexAdapter


class FakeCexAdapter(CexAdapter):
    """In-memory CEX with settable bid/ask and scriptable failures."""

    venue_id = "fakecex"

    def __init__(self, prices=None, step_size=Decimal("0.0001")):
        self.prices = dict(prices or {})  # symbol -> (bid, ask)
        self.step_size = step_size
        self.connected = False
        self.orders = []
        self.fail_sides = set()
        self.connect_error = None
        self.fill_quantity = None  # overrides the filled quantity of every order
        self.observed_at = {}  # symbol -> epoch millis of the quote
        self.balance_requests = []

    async def connect(self):
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    async def disconnect(self):
        self.connected = False

    def best_bid(self, symbol):
        price = self.prices.get(symbol)
        return price[0] if price else None

    def best_ask(self, symbol):
        price = self.prices.get(symbol)
        return price[1] if price else None

    def quote_observed_at(self, symbol):
        return self.observed_at.get(symbol)

    def normalize_quantity(self, symbol, quantity):
        return round_down_to_step(quantity, self.step_size)

    async def market_buy(self, symbol, quantity):
        return self._order(Side.BUY, symbol, quantity)

    async def market_sell(self, symbol, quantity):
        return self._order(Side.SELL, symbol, quantity)

    async def get_balance(self, asset):
        self.balance_requests.append(asset)
        return {"free": Decimal("10"), "locked": Decimal("0")}

    def _order(self, side, symbol, quantity):
        self.orders.append((side, symbol, quantity))
        if side in self.fail_sides:
            raise ExecutionLegError(f"{side.value} rejected", venue_id=self.venue_id)
        return LegResult(
            venue_id=self.venue_id,
            side=side,
            reference=f"cex-{len(self.orders)}",
            requested_quantity=quantity,
            filled_quantity=quantity if self.fill_quantity is None else self.fill_quantity,
            paper=True,
        )


class FakeDexAdapter(DexAdapter):
    """In-memory DEX keyed by (venue, base, quote), recording every call."""

    def __init__(self, prices=None, venues=("ethereum",)):
        self.prices = dict(prices or {})
        self._venues = list(venues)
        self.connected = False
        self.quote_calls = []
        self.quote_error = None
        self.swaps = []
        self.fail_sides = set()
        self.fill_quantity = None

    @property
    def venues(self):
        return self._venues

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    async def quote(self, venue_id, base_token, quote_token, amount=Decimal("1")):
        self.quote_calls.append((venue_id, base_token, quote_token, amount))
        if self.quote_error:
            raise self.quote_error
        return self.prices.get((venue_id, base_token, quote_token))

    async def swap(self, venue_id, side, base_token, quote_token, amount, max_slippage_pct):
        self.swaps.append((venue_id, side, base_token, quote_token, amount, max_slippage_pct))
        if side in self.fail_sides:
            raise ExecutionLegError("transaction reverted", venue_id=venue_id)
        return LegResult(
            venue_id=venue_id,
            side=side,
            reference=f"0xtx{len(self.swaps)}",
            requested_quantity=amount,
            filled_quantity=amount if self.fill_quantity is None else self.fill_quantity,
            paper=True,
        )


@pytest.fixture
def config():
    """Configuration with known fees and a single ETH-USDT pair."""
    cfg = BotConfig()
    cfg.trading.trading_pairs = "ETH-USDT"
    cfg.trading.minimum_profit_percentage = Decimal("0.5")
    cfg.trading.trade_size = Decimal("1")
    cfg.trading.min_profit_to_gas_ratio = Decimal("0")
    cfg.fees.cex_taker_fee = Decimal("0.001")
    cfg.fees.dex_fee = Decimal("0.003")
    cfg.fees.gas_costs = {"ethereum": Decimal("0.1"), "arbitrum": Decimal("0.1")}
    cfg.scanner.scan_interval_ms = 10
    cfg.scanner.error_backoff_ms = 20
    cfg.scanner.price_cache_ttl_seconds = 60.0
    return cfg


@pytest.fixture
def cex():
    return FakeCexAdapter(prices={"ETHUSDT": (Decimal("99.9"), Decimal("100"))})


@pytest.fixture
def dex():
    return FakeDexAdapter(prices={("ethereum", "ETH", "USDT"): Decimal("102")})


@pytest.fixture
def ledger():
    return OpportunityLedger()


@pytest.fixture
def cache():
    return PriceCache(default_ttl_seconds=60.0)


@pytest.fixture
def scanner(config, cex, dex, cache, ledger):
    return OpportunityScanner(config, cex, dex, cache, ledger, clock=lambda: 1_700_000_000_000)
