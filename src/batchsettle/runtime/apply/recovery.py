# src/batchsettle/runtime/apply/recovery.py
from __future__ import annotations

from batchsettle.runtime import events as ev
from batchsettle.runtime.errors import ValidationError
from batchsettle.runtime.events import EventLog
from batchsettle.runtime.receipts import SweepReceipt
from batchsettle.runtime.transport import ValueTransport
from batchsettle.util.addresses import is_valid_address


def apply_sweep(*, transport: ValueTransport, events: EventLog, to: str) -> SweepReceipt:
    """Move the engine's entire balance of one asset to `to`.

    Not blocked by pause. A zero balance still succeeds and records a zero sweep.
    """
    if not is_valid_address(to):
        raise ValidationError("invalid_payload", "bad_sweep_destination", {"to": to})

    amount = transport.balance_of(transport.holder)
    if amount:
        transport.transfer(to, amount)

    events.emit(ev.EMERGENCY_SWEEP, asset=transport.asset_id, to=to, amount=str(amount))
    return SweepReceipt(asset=transport.asset_id, to=str(to), amount=amount)
