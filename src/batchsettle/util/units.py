# src/batchsettle/util/units.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Union


def to_base_units(value: Union[str, int, Decimal], decimals: int) -> int:
    """Convert a decimal amount ("1.25") into integer base units, exactly.

    Rejects negative values and values with more fractional digits than
    `decimals` (no silent rounding).
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError("amount must be a str, int or Decimal (floats are lossy)")
    if int(decimals) < 0:
        raise ValueError(f"decimals must be >= 0; got: {decimals}")

    try:
        d = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"not a decimal amount: {value!r}")

    if not d.is_finite() or d < 0:
        raise ValueError(f"amount must be finite and non-negative: {value!r}")

    scaled = d.scaleb(int(decimals))
    if scaled != scaled.to_integral_value():
        raise ValueError(f"amount {value!r} has more than {decimals} fractional digits")
    return int(scaled)

