"""
Spread and profit calculation for one direction of a CEX/DEX round trip.
"""

from decimal import Decimal
from typing import Callable, Optional

from cexdex.decimal_utils import MONEY_CONTEXT, HUNDRED, ZERO, to_decimal
from cexdex.errors import ComputationError
from cexdex.models import SpreadParams, SpreadResult, now_millis


def compute_spread(
    buy_price: Decimal,
    sell_price: Decimal,
    params: SpreadParams,
    clock: Callable[[], int] = now_millis,
) -> SpreadResult:
    """
    Calculate cost, proceeds and profit of buying at one price and selling at another.

    Args:
        buy_price: Price paid per unit on the buy venue
        sell_price: Price received per unit on the sell venue
        params: Fee rates, gas cost, trade size and identification
        clock: Source of the computation timestamp

    Returns:
        SpreadResult with every intermediate amount

    Raises:
        ComputationError: If the total buy cost is zero
    """
    ctx = MONEY_CONTEXT
    buy_price = to_decimal(buy_price)
    sell_price = to_decimal(sell_price)
    trade_size = to_decimal(params.trade_size)
    gas_cost = to_decimal(params.gas_cost)

    # Cost to buy (including fee)
    buy_cost = ctx.multiply(buy_price, trade_size)
    buy_fee = ctx.multiply(buy_cost, to_decimal(params.buy_fee_rate))
    total_buy_cost = ctx.add(buy_cost, buy_fee)

    # Sell proceeds (after fee)
    sell_proceeds = ctx.multiply(sell_price, trade_size)
    sell_fee = ctx.multiply(sell_proceeds, to_decimal(params.sell_fee_rate))
    total_sell_proceeds = ctx.subtract(sell_proceeds, sell_fee)

    raw_profit = ctx.subtract(total_sell_proceeds, total_buy_cost)
    profit_after_gas = ctx.subtract(raw_profit, gas_cost)

    if total_buy_cost == ZERO:
        raise ComputationError(
            f"Total buy cost is zero for {params.pair} on {params.venue_id} "
            f"({params.direction.value})"
        )
    profit_percentage = ctx.multiply(ctx.divide(profit_after_gas, total_buy_cost), HUNDRED)

    return SpreadResult(
        direction=params.direction,
        venue_id=params.venue_id,
        pair=params.pair,
        buy_price=buy_price,
        sell_price=sell_price,
        buy_fee_amount=buy_fee,
        sell_fee_amount=sell_fee,
        gas_cost=gas_cost,
        trade_size=trade_size,
        total_buy_cost=total_buy_cost,
        total_sell_proceeds=total_sell_proceeds,
        raw_profit=raw_profit,
        profit_after_gas=profit_after_gas,
        profit_percentage=profit_percentage,
        computed_at_millis=clock(),
    )


def passes_gas_ratio(result: SpreadResult, min_ratio: Optional[Decimal]) -> bool:
    """
    Check that gas is not eating too much of the profit.

    Requires ``profit_after_gas >= gas_cost * min_ratio``. A ratio of zero or
    None disables the check.
    """
    if not min_ratio:
        return True
    return result.profit_after_gas >= MONEY_CONTEXT.multiply(result.gas_cost, min_ratio)
