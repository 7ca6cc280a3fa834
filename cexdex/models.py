"""
Data models for the CEX/DEX Arbitrage Bot.
Defines all core data structures used throughout the system.
"""

import time
import uuid
from dataclasses import dataclass, field, fields
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from cexdex.decimal_utils import decimal_to_str, quantize_percentage


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_opportunity_id() -> str:
    return f"opp_{uuid.uuid4().hex[:12]}"


class Direction(Enum):
    """Which venue is bought on and which is sold on."""
    CEX_TO_DEX = "cexToDex"  # buy on the centralized venue, sell on the DEX
    DEX_TO_CEX = "dexToCex"  # buy on the DEX, sell on the centralized venue


class Side(Enum):
    """Trading side."""
    BUY = "buy"
    SELL = "sell"


class FailureStage(Enum):
    """Leg at which an execution attempt failed."""
    NONE = "none"
    LEG1 = "leg1"
    LEG2 = "leg2"


class ExecutionState(Enum):
    """Lifecycle of a single execution attempt."""
    IDLE = "idle"
    LEG1_SUBMITTED = "leg1_submitted"
    LEG2_SUBMITTED = "leg2_submitted"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass(frozen=True)
class TradingPair:
    """Ordered (base, quote) pair, e.g. ETH/USDT."""
    base: str
    quote: str

    @classmethod
    def from_string(cls, value: str) -> "TradingPair":
        """Parse a ``BASE-QUOTE`` pair string."""
        parts = value.strip().upper().split("-")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid trading pair: {value!r} (expected BASE-QUOTE)")
        return cls(base=parts[0], quote=parts[1])

    def __str__(self) -> str:
        return f"{self.base}-{self.quote}"


@dataclass(frozen=True)
class VenuePriceQuote:
    """A price observation from one venue. Never mutated, only replaced."""
    venue_id: str
    bid: Optional[Decimal]
    ask: Optional[Decimal]
    observed_at_millis: int = field(default_factory=now_millis)


@dataclass(frozen=True)
class SpreadParams:
    """Fee, gas and sizing inputs for one spread computation."""
    buy_fee_rate: Decimal
    sell_fee_rate: Decimal
    gas_cost: Decimal
    trade_size: Decimal
    venue_id: str
    pair: TradingPair
    direction: Direction


@dataclass(frozen=True)
class SpreadResult:
    """Output of one profit computation in one direction."""
    direction: Direction
    venue_id: str
    pair: TradingPair
    buy_price: Decimal
    sell_price: Decimal
    buy_fee_amount: Decimal
    sell_fee_amount: Decimal
    gas_cost: Decimal
    trade_size: Decimal
    total_buy_cost: Decimal
    total_sell_proceeds: Decimal
    raw_profit: Decimal
    profit_after_gas: Decimal
    profit_percentage: Decimal
    computed_at_millis: int


@dataclass(frozen=True)
class Opportunity(SpreadResult):
    """A spread result that cleared the minimum profit threshold."""
    opportunity_id: str = field(default_factory=new_opportunity_id)

    @classmethod
    def from_spread(cls, result: SpreadResult) -> "Opportunity":
        values = {f.name: getattr(result, f.name) for f in fields(SpreadResult)}
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly rendering; percentage rounded for display only."""
        return {
            "opportunityId": self.opportunity_id,
            "direction": self.direction.value,
            "venue": self.venue_id,
            "baseToken": self.pair.base,
            "quoteToken": self.pair.quote,
            "buyPrice": decimal_to_str(self.buy_price),
            "sellPrice": decimal_to_str(self.sell_price),
            "buyFee": decimal_to_str(self.buy_fee_amount),
            "sellFee": decimal_to_str(self.sell_fee_amount),
            "gasCost": decimal_to_str(self.gas_cost),
            "tradeSize": decimal_to_str(self.trade_size),
            "totalBuyCost": decimal_to_str(self.total_buy_cost),
            "totalSellProceeds": decimal_to_str(self.total_sell_proceeds),
            "rawProfit": decimal_to_str(self.raw_profit),
            "profitAfterGas": decimal_to_str(self.profit_after_gas),
            "profitPercentage": decimal_to_str(quantize_percentage(self.profit_percentage)),
            "timestamp": self.computed_at_millis,
        }


@dataclass
class LegResult:
    """Result reported by a venue adapter for one submitted leg."""
    venue_id: str
    side: Side
    reference: str  # order id on the CEX, tx hash on the DEX
    requested_quantity: Decimal
    filled_quantity: Decimal
    average_price: Optional[Decimal] = None
    paper: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue_id,
            "side": self.side.value,
            "reference": self.reference,
            "requestedQuantity": decimal_to_str(self.requested_quantity),
            "filledQuantity": decimal_to_str(self.filled_quantity),
            "averagePrice": decimal_to_str(self.average_price) if self.average_price is not None else None,
            "paper": self.paper,
        }


@dataclass
class ExecutionOutcome:
    """Result of one execution attempt. Not retained by the engine."""
    opportunity: Opportunity
    leg1_result: Optional[LegResult] = None
    leg2_result: Optional[LegResult] = None
    succeeded: bool = False
    failure_stage: FailureStage = FailureStage.NONE
    state: ExecutionState = ExecutionState.IDLE
    error: Optional[str] = None
    started_at_millis: int = field(default_factory=now_millis)
    finished_at_millis: Optional[int] = None

    @property
    def is_one_sided(self) -> bool:
        """True when leg 1 settled but leg 2 did not."""
        return self.failure_stage == FailureStage.LEG2 and self.leg1_result is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "opportunity": self.opportunity.to_dict(),
            "leg1": self.leg1_result.to_dict() if self.leg1_result else None,
            "leg2": self.leg2_result.to_dict() if self.leg2_result else None,
            "succeeded": self.succeeded,
            "failureStage": self.failure_stage.value,
            "state": self.state.value,
            "error": self.error,
            "startedAt": self.started_at_millis,
            "finishedAt": self.finished_at_millis,
        }


@dataclass(frozen=True)
class ServiceStatus:
    """Snapshot of the service flags exposed to the HTTP surface."""
    running: bool
    initialized: bool
    opportunity_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "initialized": self.initialized,
            "opportunities": self.opportunity_count,
        }
