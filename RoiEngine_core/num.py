"""
Decimal arithmetic helpers for money, prices and returns.

All NAV, ROI and R-multiple math goes through ``decimal.Decimal``. Floats are
only accepted at the edges and are converted through ``str()`` so the
Decimal carries the shortest repr of the float, never its binary expansion.
Division and square roots use an explicit 50-digit ROUND_HALF_UP context.
"""

from decimal import Context, Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from .config import DECIMAL_PRECISION

FINANCIAL_CONTEXT = Context(prec=DECIMAL_PRECISION, rounding=ROUND_HALF_UP)

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)
BPS_DIVISOR = Decimal(10000)

Number = Union[Decimal, int, float, str]


def D(value: Number) -> Decimal:
    """Coerce ``value`` to Decimal (floats via their string repr)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a numeric amount")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def div(a: Decimal, b: Decimal) -> Decimal:
    return FINANCIAL_CONTEXT.divide(a, b)


def safe_div(a: Decimal, b: Decimal) -> Decimal:
    """Division that returns 0 instead of raising on a zero divisor."""
    if b.is_zero():
        return ZERO
    return FINANCIAL_CONTEXT.divide(a, b)


def sqrt(value: Decimal) -> Decimal:
    if value < 0:
        raise ValueError(f"square root of negative value {value}")
    return FINANCIAL_CONTEXT.sqrt(value)


def power(base: Decimal, exponent: Union[int, Decimal]) -> Decimal:
    return FINANCIAL_CONTEXT.power(base, D(exponent))


def mul(a: Decimal, b: Decimal) -> Decimal:
    return FINANCIAL_CONTEXT.multiply(a, b)


def total(values: Iterable[Decimal]) -> Decimal:
    result = ZERO
    for value in values:
        result = FINANCIAL_CONTEXT.add(result, value)
    return result


def percentage_change(start: Decimal, end: Decimal) -> Decimal:
    """(end / start - 1), or 0 when start is zero."""
    if start.is_zero():
        return ZERO
    return div(end, start) - ONE


def apply_basis_points(value: Decimal, bps: Number) -> Decimal:
    return div(value * D(bps), BPS_DIVISOR)


def calculate_costs(value: Decimal, fee_bps: Number, slippage_bps: Number) -> Decimal:
    return apply_basis_points(value, fee_bps) + apply_basis_points(value, slippage_bps)


def sample_std(values: list[Decimal]) -> Decimal:
    """Sample standard deviation (n - 1 denominator); 0 for fewer than 2 values."""
    n = len(values)
    if n < 2:
        return ZERO
    mean = div(total(values), D(n))
    variance = div(total((v - mean) * (v - mean) for v in values), D(n - 1))
    return sqrt(variance)


def to_float(value: Optional[Decimal]) -> float:
    """Display-only conversion (15 significant digits); never feed back into math."""
    if value is None:
        return 0.0
    if not value.is_finite():
        return float(value)
    return float(Context(prec=15).create_decimal(value))
