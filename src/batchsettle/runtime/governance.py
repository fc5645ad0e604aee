# src/batchsettle/runtime/governance.py
from __future__ import annotations

"""Governance configuration for the settlement engine.

Holds the fee rate, fee recipient, per-call recipient limit, pause flag,
fee-on-transfer registry, owner, and the single pending fee proposal.

Mutation rules:
  - every admin operation requires caller == owner (else AccessError)
  - pause / unpause / limits / registry / ownership apply immediately
  - fee rate + fee recipient change in two phases:

        NoProposal --propose--> Pending(value, eta)
        Pending    --propose--> Pending(new value, new eta)   (overwrites)
        Pending    --finalize, now >= eta--> NoProposal        (value applied)

    any other finalize fails with StateError. There is no cancel; a pending
    proposal is only superseded by another propose.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from batchsettle.ledger.constants import (
    DEFAULT_MAX_RECIPIENTS,
    MAX_FEE_BPS,
    MAX_RECIPIENTS_HARD_CAP,
    MIN_FEE_DELAY_CEILING_S,
    MIN_FEE_DELAY_FLOOR_S,
)
from batchsettle.runtime import events as ev
from batchsettle.runtime.errors import AccessError, ConfigError, StateError, ValidationError
from batchsettle.runtime.events import EventLog
from batchsettle.util.addresses import is_valid_address

Json = Dict[str, Any]


def _as_int_strict(v: Any) -> Optional[int]:
    if isinstance(v, bool) or not isinstance(v, int):
        return None
    return int(v)


@dataclass(frozen=True)
class FeeProposal:
    new_fee_bps: int
    new_fee_recipient: str
    eta: int
    proposed_at: int

    def to_json(self) -> Json:
        return {
            "new_fee_bps": int(self.new_fee_bps),
            "new_fee_recipient": self.new_fee_recipient,
            "eta": int(self.eta),
            "proposed_at": int(self.proposed_at),
        }

    @classmethod
    def from_json(cls, obj: Json) -> "FeeProposal":
        return cls(
            new_fee_bps=int(obj["new_fee_bps"]),
            new_fee_recipient=str(obj["new_fee_recipient"]),
            eta=int(obj["eta"]),
            proposed_at=int(obj.get("proposed_at", 0)),
        )


@dataclass
class GovernanceState:
    owner: str
    fee_bps: int
    fee_recipient: str
    max_recipients: int = DEFAULT_MAX_RECIPIENTS
    min_fee_delay_s: int = MIN_FEE_DELAY_FLOOR_S
    paused: bool = False
    fee_on_transfer: Dict[str, bool] = field(default_factory=dict)
    pending: Optional[FeeProposal] = None

    def to_json(self) -> Json:
        return {
            "owner": self.owner,
            "fee_bps": int(self.fee_bps),
            "fee_recipient": self.fee_recipient,
            "max_recipients": int(self.max_recipients),
            "min_fee_delay_s": int(self.min_fee_delay_s),
            "paused": bool(self.paused),
            "fee_on_transfer": dict(self.fee_on_transfer),
            "pending": self.pending.to_json() if self.pending is not None else None,
        }

    @classmethod
    def from_json(cls, obj: Json) -> "GovernanceState":
        pending = obj.get("pending")
        fot = obj.get("fee_on_transfer")
        return cls(
            owner=str(obj["owner"]),
            fee_bps=int(obj["fee_bps"]),
            fee_recipient=str(obj["fee_recipient"]),
            max_recipients=int(obj.get("max_recipients", DEFAULT_MAX_RECIPIENTS)),
            min_fee_delay_s=int(obj.get("min_fee_delay_s", MIN_FEE_DELAY_FLOOR_S)),
            paused=bool(obj.get("paused", False)),
            fee_on_transfer={str(k): bool(v) for k, v in fot.items()} if isinstance(fot, dict) else {},
            pending=FeeProposal.from_json(pending) if isinstance(pending, dict) else None,
        )


def _check_fee_bps(fee_bps: Any) -> int:
    v = _as_int_strict(fee_bps)
    if v is None or v < 0 or v > MAX_FEE_BPS:
        raise ConfigError("config_out_of_range", "fee_bps", {"fee_bps": fee_bps, "max": MAX_FEE_BPS})
    return v


def _check_max_recipients(n: Any) -> int:
    v = _as_int_strict(n)
    if v is None or v <= 0 or v > MAX_RECIPIENTS_HARD_CAP:
        raise ConfigError(
            "config_out_of_range",
            "max_recipients",
            {"max_recipients": n, "hard_cap": MAX_RECIPIENTS_HARD_CAP},
        )
    return v


def _check_min_fee_delay(d: Any) -> int:
    v = _as_int_strict(d)
    if v is None or v < MIN_FEE_DELAY_FLOOR_S or v > MIN_FEE_DELAY_CEILING_S:
        raise ConfigError(
            "config_out_of_range",
            "min_fee_delay_s",
            {"min_fee_delay_s": d, "floor": MIN_FEE_DELAY_FLOOR_S, "ceiling": MIN_FEE_DELAY_CEILING_S},
        )
    return v


def _check_fee_recipient(addr: Any) -> str:
    if not is_valid_address(addr):
        raise ConfigError("invalid_address", "fee_recipient", {"fee_recipient": addr})
    return str(addr)


class GovernanceConfig:
    """Mutable engine configuration, shared by reference with the settlement paths."""

    def __init__(self, *, state: GovernanceState, clock: Callable[[], int], events: EventLog) -> None:
        self._state = state
        self._clock = clock
        self.events = events

    @classmethod
    def initialize(
        cls,
        *,
        owner: str,
        fee_bps: int,
        fee_recipient: str,
        max_recipients: int = DEFAULT_MAX_RECIPIENTS,
        min_fee_delay_s: int = MIN_FEE_DELAY_FLOOR_S,
        clock: Callable[[], int],
        events: EventLog,
    ) -> "GovernanceConfig":
        if not is_valid_address(owner):
            raise ConfigError("invalid_address", "owner", {"owner": owner})
        st = GovernanceState(
            owner=str(owner),
            fee_bps=_check_fee_bps(fee_bps),
            fee_recipient=_check_fee_recipient(fee_recipient),
            max_recipients=_check_max_recipients(max_recipients),
            min_fee_delay_s=_check_min_fee_delay(min_fee_delay_s),
        )
        return cls(state=st, clock=clock, events=events)

    # ----------------------------
    # Read surface
    # ----------------------------

    @property
    def owner(self) -> str:
        return self._state.owner

    @property
    def fee_bps(self) -> int:
        return self._state.fee_bps

    @property
    def fee_recipient(self) -> str:
        return self._state.fee_recipient

    @property
    def max_recipients(self) -> int:
        return self._state.max_recipients

    @property
    def min_fee_delay_s(self) -> int:
        return self._state.min_fee_delay_s

    @property
    def paused(self) -> bool:
        return self._state.paused

    @property
    def pending(self) -> Optional[FeeProposal]:
        return self._state.pending

    def is_fee_on_transfer(self, token_id: str) -> bool:
        return bool(self._state.fee_on_transfer.get(str(token_id), False))

    def to_json(self) -> Json:
        return self._state.to_json()

    def snapshot(self) -> GovernanceState:
        return copy.deepcopy(self._state)

    def rollback_to(self, state: GovernanceState) -> None:
        self._state = copy.deepcopy(state)

    # ----------------------------
    # Guards used by settlement
    # ----------------------------

    def require_owner(self, caller: str) -> None:
        if str(caller) != self._state.owner:
            raise AccessError("forbidden", "owner_required", {"caller": caller})

    def require_not_paused(self) -> None:
        if self._state.paused:
            raise StateError("paused", "engine_paused", {})

    # ----------------------------
    # Admin operations
    # ----------------------------

    def pause(self, caller: str) -> None:
        self.require_owner(caller)
        if self._state.paused:
            return
        self._state.paused = True
        self.events.emit(ev.PAUSED, by=caller)

    def unpause(self, caller: str) -> None:
        self.require_owner(caller)
        if not self._state.paused:
            return
        self._state.paused = False
        self.events.emit(ev.UNPAUSED, by=caller)

    def set_max_recipients(self, caller: str, n: int) -> None:
        self.require_owner(caller)
        v = _check_max_recipients(n)
        old = self._state.max_recipients
        self._state.max_recipients = v
        self.events.emit(ev.LIMITS_CHANGED, old_max_recipients=old, max_recipients=v)

    def set_fee_on_transfer_flag(self, caller: str, token_id: str, flag: bool) -> None:
        self.require_owner(caller)
        tid = str(token_id or "").strip()
        if not tid:
            raise ValidationError("invalid_payload", "missing_token_id", {})
        if flag:
            self._state.fee_on_transfer[tid] = True
        else:
            self._state.fee_on_transfer.pop(tid, None)
        self.events.emit(ev.FEE_ON_TRANSFER_FLAG_SET, token=tid, flag=bool(flag))

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.require_owner(caller)
        if not is_valid_address(new_owner):
            raise ValidationError("invalid_address", "new_owner", {"new_owner": new_owner})
        old = self._state.owner
        self._state.owner = str(new_owner)
        self.events.emit(ev.OWNERSHIP_TRANSFERRED, old_owner=old, new_owner=str(new_owner))

    def propose_fee_update(self, caller: str, new_fee_bps: int, new_fee_recipient: str) -> FeeProposal:
        self.require_owner(caller)
        bps = _check_fee_bps(new_fee_bps)
        recipient = _check_fee_recipient(new_fee_recipient)

        now = int(self._clock())
        prop = FeeProposal(
            new_fee_bps=bps,
            new_fee_recipient=recipient,
            eta=now + int(self._state.min_fee_delay_s),
            proposed_at=now,
        )
        # Overwrites any in-flight proposal.
        self._state.pending = prop
        self.events.emit(
            ev.FEE_UPDATE_PROPOSED,
            new_fee_bps=bps,
            new_fee_recipient=recipient,
            eta=prop.eta,
        )
        return prop

    def finalize_fee_update(self, caller: str) -> None:
        self.require_owner(caller)
        prop = self._state.pending
        if prop is None:
            raise StateError("invalid_state", "no_pending_fee_update", {})

        now = int(self._clock())
        if now < prop.eta:
            raise StateError("timelocked", "fee_update_not_ready", {"now": now, "eta": prop.eta})

        old_bps, old_recipient = self._state.fee_bps, self._state.fee_recipient
        self._state.fee_bps = prop.new_fee_bps
        self._state.fee_recipient = prop.new_fee_recipient
        self._state.pending = None
        self.events.emit(
            ev.FEE_CONFIG_CHANGED,
            old_fee_bps=old_bps,
            old_fee_recipient=old_recipient,
            fee_bps=prop.new_fee_bps,
            fee_recipient=prop.new_fee_recipient,
        )
