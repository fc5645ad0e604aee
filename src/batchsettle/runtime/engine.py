# src/batchsettle/runtime/engine.py
from __future__ import annotations

"""Settlement engine facade.

Wires the World, GovernanceConfig, EventLog and optional SQLite store together
and exposes the public operations. Every fund-moving call runs as:

    guard.hold(op)            reentrant entry -> StateError
      require_not_paused()    (settlement only; sweeps ignore pause)
      events.staged()         events publish only on success
        world.transaction()   any raise restores every balance
          plan -> apply

and, once committed, the snapshot (plus the newly published events) is written
to the store when one is attached.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from batchsettle.ledger.constants import (
    DEFAULT_MAX_RECIPIENTS,
    ENGINE_ADDRESS,
    MIN_FEE_DELAY_FLOOR_S,
    NATIVE_ASSET,
)
from batchsettle.runtime import metrics
from batchsettle.runtime.apply.atomic import apply_atomic
from batchsettle.runtime.apply.partial import apply_partial
from batchsettle.runtime.apply.plan import BatchPlan, plan_batch
from batchsettle.runtime.apply.recovery import apply_sweep
from batchsettle.runtime.errors import SettlementError, ValidationError
from batchsettle.runtime.events import Event, EventLog
from batchsettle.runtime.fees import quote_fee
from batchsettle.runtime.governance import FeeProposal, GovernanceConfig, GovernanceState
from batchsettle.runtime.guard import ReentrancyGuard
from batchsettle.runtime.receipts import PartialSettlementReceipt, SettlementReceipt, SweepReceipt
from batchsettle.runtime.sqlite_db import SqliteStateStore
from batchsettle.runtime.structured_logging import log_event
from batchsettle.runtime.transport import ValueTransport, transport_for
from batchsettle.runtime.world import World

Json = Dict[str, Any]
T = TypeVar("T")

_log = logging.getLogger("batchsettle.engine")


class SettlementEngine:
    def __init__(
        self,
        *,
        world: World,
        governance: GovernanceConfig,
        events: EventLog,
        address: str = ENGINE_ADDRESS,
        store: Optional[SqliteStateStore] = None,
    ) -> None:
        self.world = world
        self.governance = governance
        self.events = events
        self.address = str(address)
        self.store = store
        self.guard = ReentrancyGuard()
        self._unpersisted: List[Event] = []
        self.events.set_sink(self._on_published)

    @classmethod
    def create(
        cls,
        *,
        world: World,
        owner: str,
        fee_bps: int,
        fee_recipient: str,
        max_recipients: int = DEFAULT_MAX_RECIPIENTS,
        min_fee_delay_s: int = MIN_FEE_DELAY_FLOOR_S,
        address: str = ENGINE_ADDRESS,
        store: Optional[SqliteStateStore] = None,
    ) -> "SettlementEngine":
        events = EventLog(clock=world.now)
        gov = GovernanceConfig.initialize(
            owner=owner,
            fee_bps=fee_bps,
            fee_recipient=fee_recipient,
            max_recipients=max_recipients,
            min_fee_delay_s=min_fee_delay_s,
            clock=world.now,
            events=events,
        )
        engine = cls(world=world, governance=gov, events=events, address=address, store=store)
        engine._refresh_gauges()
        engine._persist()
        return engine

    @classmethod
    def restore(
        cls,
        *,
        store: SqliteStateStore,
        clock: Optional[Callable[[], int]] = None,
    ) -> "SettlementEngine":
        """Rebuild an engine from the store's latest snapshot and event history."""
        snap = store.read()
        gov_raw = snap.get("governance")
        world_raw = snap.get("world")
        if not isinstance(gov_raw, dict) or not isinstance(world_raw, dict):
            raise ValueError("engine snapshot must hold 'governance' and 'world' objects")

        world = World(state=world_raw, clock=clock)
        events = EventLog(clock=world.now, history=store.read_events())
        gov = GovernanceConfig(state=GovernanceState.from_json(gov_raw), clock=world.now, events=events)
        engine = cls(
            world=world,
            governance=gov,
            events=events,
            address=str(snap.get("engine_address") or ENGINE_ADDRESS),
            store=store,
        )
        engine._refresh_gauges()
        return engine

    # ----------------------------
    # Persistence
    # ----------------------------

    def snapshot(self) -> Json:
        return {
            "engine_address": self.address,
            "governance": self.governance.to_json(),
            "world": self.world.to_json(),
        }

    def _on_published(self, batch: List[Event]) -> None:
        if self.store is not None:
            self._unpersisted.extend(batch)

    def _persist(self) -> None:
        # Mid-operation (e.g. an admin call from a receive hook): the outer call persists.
        if self.store is None or self.world.in_transaction:
            return
        # Events stay queued until a commit lands; the next commit carries them.
        pending = list(self._unpersisted)
        self.store.commit(self.snapshot(), pending)
        del self._unpersisted[: len(pending)]

    def _refresh_gauges(self) -> None:
        metrics.set_gauge("paused", 1 if self.governance.paused else 0)
        metrics.set_gauge("fee_bps", self.governance.fee_bps)
        metrics.set_gauge("max_recipients", self.governance.max_recipients)

    # ----------------------------
    # Execution scaffolding
    # ----------------------------

    def _guarded(self, op: str, body: Callable[[], T], *, check_pause: bool = True) -> T:
        gov_before = self.governance.snapshot()
        try:
            with self.guard.hold(op):
                if check_pause:
                    self.governance.require_not_paused()
                with self.events.staged():
                    with self.world.transaction():
                        result = body()
        except SettlementError as e:
            # A receive hook may have reached governance while control was out.
            self.governance.rollback_to(gov_before)
            self._refresh_gauges()
            if op.startswith("settle"):
                metrics.inc_counter(metrics.SETTLE_REJECTED)
            log_event(_log, "operation_rejected", op=op, kind=e.kind, code=e.code, reason=e.reason)
            raise
        except BaseException:
            self.governance.rollback_to(gov_before)
            self._refresh_gauges()
            raise
        self._persist()
        return result

    def _admin(self, op: str, body: Callable[[], T]) -> T:
        try:
            with self.events.staged():
                result = body()
        except SettlementError as e:
            log_event(_log, "operation_rejected", op=op, kind=e.kind, code=e.code, reason=e.reason)
            raise
        self._refresh_gauges()
        self._persist()
        return result

    def _transport(self, asset_id: str) -> ValueTransport:
        if asset_id != NATIVE_ASSET and not self.world.has_token(asset_id):
            raise ValidationError("invalid_payload", "unknown_token", {"token": asset_id})
        return transport_for(
            self.world,
            asset_id=asset_id,
            holder=self.address,
            fee_on_transfer=self.governance.is_fee_on_transfer(asset_id),
        )

    def _plan(self, recipients: Sequence[str], amounts: Sequence[int]) -> BatchPlan:
        return plan_batch(
            recipients,
            amounts,
            max_recipients=self.governance.max_recipients,
            fee_bps=self.governance.fee_bps,
        )

    # ----------------------------
    # Settlement
    # ----------------------------

    def settle_native(
        self,
        caller: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
        *,
        value: int,
    ) -> SettlementReceipt:
        """All-or-nothing native distribution; `value` must equal total + fee exactly."""

        def body() -> SettlementReceipt:
            plan = self._plan(recipients, amounts)
            return apply_atomic(
                transport=self._transport(NATIVE_ASSET),
                events=self.events,
                caller=str(caller),
                fee_recipient=self.governance.fee_recipient,
                plan=plan,
                value=value,
            )

        receipt = self._guarded("settle_native", body)
        metrics.inc_counter(metrics.SETTLE_ATOMIC_OK)
        return receipt

    def settle_token(
        self,
        caller: str,
        token_id: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
    ) -> SettlementReceipt:
        """All-or-nothing token distribution; pulls total + fee from the caller's allowance."""

        def body() -> SettlementReceipt:
            plan = self._plan(recipients, amounts)
            return apply_atomic(
                transport=self._transport(str(token_id)),
                events=self.events,
                caller=str(caller),
                fee_recipient=self.governance.fee_recipient,
                plan=plan,
            )

        receipt = self._guarded("settle_token", body)
        metrics.inc_counter(metrics.SETTLE_ATOMIC_OK)
        return receipt

    def settle_token_best_effort(
        self,
        caller: str,
        token_id: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
    ) -> PartialSettlementReceipt:
        def body() -> PartialSettlementReceipt:
            plan = self._plan(recipients, amounts)
            return apply_partial(
                transport=self._transport(str(token_id)),
                events=self.events,
                caller=str(caller),
                fee_recipient=self.governance.fee_recipient,
                plan=plan,
            )

        receipt = self._guarded("settle_token_best_effort", body)
        metrics.inc_counter(metrics.SETTLE_PARTIAL_OK)
        if receipt.failed_count:
            metrics.inc_counter(metrics.TRANSFER_FAILED, receipt.failed_count)
        return receipt

    # ----------------------------
    # Queries
    # ----------------------------

    def quote_fee(self, total: int) -> int:
        if isinstance(total, bool) or not isinstance(total, int) or total < 0:
            raise ValidationError("invalid_payload", "bad_total", {"total": repr(total)})
        return quote_fee(total, self.governance.fee_bps)

    def balance_of(self, asset_id: str, holder: str) -> int:
        return self._transport(str(asset_id)).balance_of(str(holder))

    # ----------------------------
    # Admin
    # ----------------------------

    def pause(self, caller: str) -> None:
        self._admin("pause", lambda: self.governance.pause(caller))

    def unpause(self, caller: str) -> None:
        self._admin("unpause", lambda: self.governance.unpause(caller))

    def set_max_recipients(self, caller: str, n: int) -> None:
        self._admin("set_max_recipients", lambda: self.governance.set_max_recipients(caller, n))

    def set_fee_on_transfer_flag(self, caller: str, token_id: str, flag: bool) -> None:
        self._admin(
            "set_fee_on_transfer_flag",
            lambda: self.governance.set_fee_on_transfer_flag(caller, token_id, flag),
        )

    def propose_fee_update(self, caller: str, new_fee_bps: int, new_fee_recipient: str) -> FeeProposal:
        return self._admin(
            "propose_fee_update",
            lambda: self.governance.propose_fee_update(caller, new_fee_bps, new_fee_recipient),
        )

    def finalize_fee_update(self, caller: str) -> None:
        self._admin("finalize_fee_update", lambda: self.governance.finalize_fee_update(caller))

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._admin("transfer_ownership", lambda: self.governance.transfer_ownership(caller, new_owner))

    # ----------------------------
    # Emergency recovery
    # ----------------------------

    def sweep_token(self, caller: str, token_id: str, to: str) -> SweepReceipt:
        def body() -> SweepReceipt:
            self.governance.require_owner(caller)
            return apply_sweep(transport=self._transport(str(token_id)), events=self.events, to=to)

        receipt = self._guarded("sweep_token", body, check_pause=False)
        metrics.inc_counter(metrics.SWEEPS)
        return receipt

    def sweep_native(self, caller: str, to: str) -> SweepReceipt:
        def body() -> SweepReceipt:
            self.governance.require_owner(caller)
            return apply_sweep(transport=self._transport(NATIVE_ASSET), events=self.events, to=to)

        receipt = self._guarded("sweep_native", body, check_pause=False)
        metrics.inc_counter(metrics.SWEEPS)
        return receipt
