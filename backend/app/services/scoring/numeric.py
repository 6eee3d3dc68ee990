"""Decimal helpers shared by the scoring engine.

Every amount, ratio and score goes through ``decimal.Decimal`` so that sums
and weighted averages are exact in base 10 and match the ``NUMERIC`` columns
they are persisted to.  Division by zero is never guarded here; callers check
the divisor before dividing.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Union

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Optional[Decimal]:
    """Convert ``value`` to Decimal, preserving ``None``.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather than
    its binary expansion.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    if value < low:
        return low
    if value > high:
        return high
    return value


def clamp_score(value: Decimal) -> Decimal:
    """Clamp a score to the closed range [0, 100]."""
    return clamp(value, ZERO, HUNDRED)


def decimal_to_float(value: Optional[Decimal]) -> Optional[float]:
    """JSON view of a Decimal; ``None`` stays ``None``."""
    if value is None:
        return None
    return float(value)
