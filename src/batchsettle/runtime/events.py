# src/batchsettle/runtime/events.py
from __future__ import annotations

"""Emitted records.

Operations stage events while they run and publish them only when the operation
commits. A rolled-back call leaves no events behind, in memory, in logs, or in the
store.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from batchsettle.runtime.structured_logging import log_event

Json = Dict[str, Any]

FEE_CONFIG_CHANGED = "FeeConfigChanged"
FEE_UPDATE_PROPOSED = "FeeUpdateProposed"
LIMITS_CHANGED = "LimitsChanged"
PAUSED = "Paused"
UNPAUSED = "Unpaused"
FEE_ON_TRANSFER_FLAG_SET = "FeeOnTransferFlagSet"
OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
BATCH_SETTLED = "BatchSettled"
BATCH_SETTLED_PARTIAL = "BatchSettledPartial"
TRANSFER_FAILED = "TransferFailed"
EMERGENCY_SWEEP = "EmergencySweep"

EVENT_NAMES = {
    FEE_CONFIG_CHANGED,
    FEE_UPDATE_PROPOSED,
    LIMITS_CHANGED,
    PAUSED,
    UNPAUSED,
    FEE_ON_TRANSFER_FLAG_SET,
    OWNERSHIP_TRANSFERRED,
    BATCH_SETTLED,
    BATCH_SETTLED_PARTIAL,
    TRANSFER_FAILED,
    EMERGENCY_SWEEP,
}


@dataclass(frozen=True)
class Event:
    seq: int
    name: str
    ts: int
    fields: Json = field(default_factory=dict)

    def to_json(self) -> Json:
        return {"seq": int(self.seq), "name": self.name, "ts": int(self.ts), "fields": dict(self.fields)}

    @classmethod
    def from_json(cls, obj: Json) -> "Event":
        fields = obj.get("fields")
        return cls(
            seq=int(obj["seq"]),
            name=str(obj["name"]),
            ts=int(obj.get("ts", 0)),
            fields=dict(fields) if isinstance(fields, dict) else {},
        )


class EventLog:
    def __init__(
        self,
        *,
        clock: Callable[[], int],
        sink: Optional[Callable[[List[Event]], None]] = None,
        history: Optional[List[Event]] = None,
    ) -> None:
        self._clock = clock
        self._sink = sink
        self._events: List[Event] = list(history or [])
        self._staged: Optional[List[Event]] = None
        self._logger = logging.getLogger("batchsettle.events")

    @property
    def events(self) -> List[Event]:
        return list(self._events)

    def by_name(self, name: str) -> List[Event]:
        return [e for e in self._events if e.name == name]

    def since(self, after_seq: int = -1, *, limit: int = 100, name: Optional[str] = None) -> List[Event]:
        out = [e for e in self._events if e.seq > int(after_seq) and (name is None or e.name == name)]
        return out[: max(0, int(limit))]

    def _next_seq(self) -> int:
        if self._staged:
            return self._staged[-1].seq + 1
        if self._events:
            return self._events[-1].seq + 1
        return 0

    def set_sink(self, sink: Optional[Callable[[List[Event]], None]]) -> None:
        self._sink = sink

    def emit(self, name: str, **fields: Any) -> Event:
        if name not in EVENT_NAMES:
            raise ValueError(f"unknown event name: {name!r}")
        ev = Event(seq=self._next_seq(), name=name, ts=int(self._clock()), fields=dict(fields))
        if self._staged is not None:
            self._staged.append(ev)
        else:
            self._publish([ev])
        return ev

    @contextmanager
    def staged(self) -> Iterator[None]:
        if self._staged is not None:
            # Already inside a staged block; the outer block owns publication.
            yield
            return

        self._staged = []
        try:
            yield
        except BaseException:
            self._staged = None
            raise
        batch, self._staged = self._staged, None
        self._publish(batch)

    def _publish(self, batch: List[Event]) -> None:
        if not batch:
            return
        self._events.extend(batch)
        for ev in batch:
            log_event(self._logger, ev.name, seq=ev.seq, **ev.fields)
        if self._sink is not None:
            self._sink(batch)
