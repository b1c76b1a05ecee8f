"""
Money helpers.

Amounts are Decimal quantized to cents with ROUND_HALF_UP: half a cent
rounds up (0.025 -> 0.03).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Numeric = Union[Decimal, float, int, str]


def to_money(value: Numeric) -> Decimal:
    """Convert a number to a cent-quantized Decimal."""
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            # str() keeps 0.1 as 0.1 instead of its binary expansion
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values) -> Decimal:
    return sum((to_money(v) for v in values), ZERO)
