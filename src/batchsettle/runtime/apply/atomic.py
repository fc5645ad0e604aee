# src/batchsettle/runtime/apply/atomic.py
from __future__ import annotations

from typing import Optional

from batchsettle.ledger.constants import NATIVE_ASSET
from batchsettle.runtime import events as ev
from batchsettle.runtime.apply.plan import BatchPlan
from batchsettle.runtime.errors import FundingMismatchError
from batchsettle.runtime.events import EventLog
from batchsettle.runtime.receipts import SettlementReceipt
from batchsettle.runtime.transport import ValueTransport


def _require_exact_value(plan: BatchPlan, value: Optional[int]) -> int:
    v = value if isinstance(value, int) and not isinstance(value, bool) else None
    if v is None or v != plan.required:
        raise FundingMismatchError(
            "funding_mismatch",
            "value_not_total_plus_fee",
            {"value": None if value is None else str(value), "required": str(plan.required)},
        )
    return v


def apply_atomic(
    *,
    transport: ValueTransport,
    events: EventLog,
    caller: str,
    fee_recipient: str,
    plan: BatchPlan,
    value: Optional[int] = None,
) -> SettlementReceipt:
    """Pull total + fee, pay the fee, then pay every recipient in order.

    Every movement is must-succeed. The first failure raises and the enclosing
    world transaction discards everything moved so far.
    """
    engine = transport.holder

    if transport.asset_id == NATIVE_ASSET:
        amount_in = _require_exact_value(plan, value)
    else:
        amount_in = plan.required

    if amount_in:
        transport.transfer_from(caller, engine, amount_in)

    if plan.fee:
        transport.transfer(fee_recipient, plan.fee)

    for to, amount in zip(plan.recipients, plan.amounts):
        transport.transfer(to, amount)

    events.emit(
        ev.BATCH_SETTLED,
        asset=transport.asset_id,
        caller=caller,
        recipient_count=plan.count,
        total=str(plan.total),
        fee=str(plan.fee),
    )
    return SettlementReceipt(
        asset=transport.asset_id,
        recipient_count=plan.count,
        total=plan.total,
        fee=plan.fee,
    )
