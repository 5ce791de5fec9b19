"""
Money arithmetic.

All ledger amounts are ``decimal.Decimal`` values quantized to cents. Binary
floats are only accepted at the edge and converted through their string form.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, ROUND_FLOOR
from typing import Iterable, Union

from backend.app.core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Tolerance for settlement comparisons
MONEY_EPSILON = Decimal("0.01")

MoneyLike = Union[Decimal, int, str, float]


def to_money(value: MoneyLike) -> Decimal:
    """
    Convert a value to a cent-quantized Decimal.

    Raises:
        ValidationError: for unparsable, NaN or infinite values
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid monetary value: {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid monetary value: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid monetary value: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def divide(amount: Decimal, parts: int, rounding: str = ROUND_FLOOR) -> Decimal:
    """Divide to cents with an explicit rounding mode."""
    if parts <= 0:
        raise ValidationError("Cannot divide an amount into fewer than one part")
    return (Decimal(amount) / parts).quantize(CENT, rounding=rounding)


def money_sum(amounts: Iterable[MoneyLike]) -> Decimal:
    return sum((to_money(a) for a in amounts), ZERO)


def money_equal(a: MoneyLike, b: MoneyLike, epsilon: Decimal = MONEY_EPSILON) -> bool:
    """Equality within epsilon, for settlement comparisons."""
    return abs(to_money(a) - to_money(b)) <= epsilon
