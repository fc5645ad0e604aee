# src/batchsettle/runtime/fees.py
from __future__ import annotations

from batchsettle.ledger.constants import BPS_DENOMINATOR


def quote_fee(total: int, fee_bps: int) -> int:
    """Ceiling-rounded service fee for `total` at `fee_bps`.

    fee = ceil(total * fee_bps / 10_000), computed with integer ceiling division so
    the engine never under-collects. Zero when either input is zero.

    Monotonic non-decreasing in `total`, and fee <= total for any fee_bps <= 10_000.
    """
    if isinstance(total, bool) or not isinstance(total, int) or total < 0:
        raise ValueError(f"total must be a non-negative int; got: {total!r}")
    if isinstance(fee_bps, bool) or not isinstance(fee_bps, int) or not (0 <= fee_bps <= BPS_DENOMINATOR):
        raise ValueError(f"fee_bps must be an int in [0, {BPS_DENOMINATOR}]; got: {fee_bps!r}")

    if total == 0 or fee_bps == 0:
        return 0
    return (total * fee_bps + BPS_DENOMINATOR - 1) // BPS_DENOMINATOR
