# src/batchsettle/runtime/apply/partial.py
from __future__ import annotations

from typing import List

from batchsettle.runtime import events as ev
from batchsettle.runtime.apply.plan import BatchPlan
from batchsettle.runtime.events import EventLog
from batchsettle.runtime.fees import quote_fee
from batchsettle.runtime.receipts import PartialSettlementReceipt, TransferOutcome
from batchsettle.runtime.transport import ValueTransport


def distribute_best_effort(transport: ValueTransport, plan: BatchPlan, events: EventLog) -> List[TransferOutcome]:
    """Try every recipient once, in order. No failure escapes the loop."""
    outcomes: List[TransferOutcome] = []
    for idx, (to, amount) in enumerate(zip(plan.recipients, plan.amounts)):
        ok = transport.try_transfer(to, amount)
        outcomes.append(TransferOutcome(recipient=to, amount=amount, succeeded=ok))
        if not ok:
            events.emit(
                ev.TRANSFER_FAILED,
                asset=transport.asset_id,
                index=idx,
                recipient=to,
                amount=str(amount),
            )
    return outcomes


def apply_partial(
    *,
    transport: ValueTransport,
    events: EventLog,
    caller: str,
    fee_recipient: str,
    plan: BatchPlan,
) -> PartialSettlementReceipt:
    """Best-effort token distribution.

    Funding pulled is total + fee_max where fee_max is the fee on the full total.
    After the loop the fee is recomputed on what was actually sent, and the
    difference (failed amounts plus unused fee) goes back to the caller:

        refund = (total + fee_max) - (sent_total + fee_charged)
               = failed_total + (fee_max - fee_charged)
    """
    engine = transport.holder
    fee_max = plan.fee
    pulled = plan.required

    if pulled:
        transport.transfer_from(caller, engine, pulled)

    outcomes = distribute_best_effort(transport, plan, events)

    sent_total = sum(o.amount for o in outcomes if o.succeeded)
    sent_count = sum(1 for o in outcomes if o.succeeded)
    failed_total = plan.total - sent_total

    fee_charged = quote_fee(sent_total, plan.fee_bps)
    if fee_charged:
        transport.transfer(fee_recipient, fee_charged)

    refund = pulled - sent_total - fee_charged
    if refund:
        transport.transfer(caller, refund)

    events.emit(
        ev.BATCH_SETTLED_PARTIAL,
        asset=transport.asset_id,
        caller=caller,
        requested_count=plan.count,
        sent_count=sent_count,
        sent_total=str(sent_total),
        fee=str(fee_charged),
        refund=str(refund),
    )
    return PartialSettlementReceipt(
        asset=transport.asset_id,
        requested_count=plan.count,
        sent_count=sent_count,
        total=plan.total,
        sent_total=sent_total,
        failed_total=failed_total,
        fee_max=fee_max,
        fee_charged=fee_charged,
        refund=refund,
        outcomes=outcomes,
    )
