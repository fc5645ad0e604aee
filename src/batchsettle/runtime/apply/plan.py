# src/batchsettle/runtime/apply/plan.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence, Tuple

from batchsettle.ledger.constants import UINT256_MAX
from batchsettle.runtime.errors import AmountArithmeticError, ValidationError
from batchsettle.runtime.fees import quote_fee
from batchsettle.util.addresses import is_valid_address


@dataclass(frozen=True)
class BatchPlan:
    """Everything the apply phase needs, computed before any value moves."""

    recipients: Tuple[str, ...]
    amounts: Tuple[int, ...]
    total: int
    fee: int
    fee_bps: int

    @property
    def count(self) -> int:
        return len(self.recipients)

    @property
    def required(self) -> int:
        return self.total + self.fee


def _as_amount(v: Any, idx: int) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValidationError("invalid_payload", "bad_amount", {"index": idx, "amount": repr(v)})
    if v < 0:
        raise ValidationError("invalid_payload", "negative_amount", {"index": idx, "amount": str(v)})
    return int(v)


def checked_sum(amounts: Sequence[int]) -> int:
    total = 0
    for a in amounts:
        total += int(a)
        if total > UINT256_MAX:
            raise AmountArithmeticError("overflow", "total_exceeds_uint256", {"count": len(amounts)})
    return total


def plan_batch(
    recipients: Sequence[str],
    amounts: Sequence[int],
    *,
    max_recipients: int,
    fee_bps: int,
) -> BatchPlan:
    """Validate a batch and quote its fee.

    Order: shape, cap, recipients, amounts, checked total, fee. Nothing here
    reads or writes balances, so a rejection never moves funds.
    """
    rs = list(recipients or [])
    am = list(amounts or [])

    if len(rs) != len(am):
        raise ValidationError(
            "invalid_payload",
            "length_mismatch",
            {"recipients": len(rs), "amounts": len(am)},
        )
    if not rs:
        raise ValidationError("invalid_payload", "empty_batch", {})
    if len(rs) > int(max_recipients):
        raise ValidationError(
            "invalid_payload",
            "too_many_recipients",
            {"count": len(rs), "max_recipients": int(max_recipients)},
        )

    for i, r in enumerate(rs):
        if not is_valid_address(r):
            raise ValidationError("invalid_payload", "bad_recipient", {"index": i, "recipient": r})

    parsed = tuple(_as_amount(a, i) for i, a in enumerate(am))
    total = checked_sum(parsed)
    fee = quote_fee(total, int(fee_bps))
    if total + fee > UINT256_MAX:
        raise AmountArithmeticError("overflow", "total_plus_fee_exceeds_uint256", {"total": str(total)})

    return BatchPlan(
        recipients=tuple(str(r) for r in rs),
        amounts=parsed,
        total=total,
        fee=fee,
        fee_bps=int(fee_bps),
    )
