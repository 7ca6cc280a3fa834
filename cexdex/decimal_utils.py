"""
Exact decimal arithmetic helpers for prices, fees and profit.

Money values never touch binary floating point: floats coming from
configuration or JSON are converted through ``str`` first.
"""

from decimal import Decimal, Context, InvalidOperation, ROUND_DOWN, ROUND_HALF_EVEN
from typing import Union

from cexdex.errors import ComputationError


MONEY_CONTEXT = Context(prec=50)

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric) -> Decimal:
    """Convert a number or numeric string to a finite Decimal."""
    if value is None:
        raise ComputationError("Cannot convert None to Decimal")
    if isinstance(value, bool):
        raise ComputationError(f"Cannot convert boolean {value!r} to Decimal")
    try:
        if isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(value) if not isinstance(value, str) else Decimal(value.strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ComputationError(f"Invalid decimal value {value!r}") from e
    if not result.is_finite():
        raise ComputationError(f"Non-finite decimal value {value!r}")
    return result


def quantize_percentage(value: Decimal, places: int = 4) -> Decimal:
    """Round a percentage for display. Only used at reporting time."""
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_EVEN, context=MONEY_CONTEXT)


def round_down_to_step(quantity: Decimal, step: Decimal) -> Decimal:
    """Floor a quantity to a multiple of an exchange step size."""
    if step <= ZERO:
        raise ComputationError(f"Step size must be positive, got {step}")
    steps = (quantity / step).to_integral_value(rounding=ROUND_DOWN)
    return (steps * step).quantize(step, rounding=ROUND_DOWN) if steps else ZERO


def decimal_to_str(value: Decimal) -> str:
    """Plain string rendering without exponent notation."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
