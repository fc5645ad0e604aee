# src/batchsettle/runtime/world.py
from __future__ import annotations

"""In-process value-holding world.

The World owns everything the settlement engine moves value through:

  state["native"][addr]                -> int native balance
  state["tokens"][token_id]            -> token record (see tokens.py)

plus two runtime-only pieces that are never persisted:
  - receive hooks: callables run when an address receives native value
  - the clock

`transaction()` is the rollback primitive: the state is snapshotted on entry and
restored if the body raises. Transactions nest; each level restores only its own
snapshot.
"""

import copy
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from batchsettle.runtime.tokens import TokenContract

Json = Dict[str, Any]

ReceiveHook = Callable[[str, int], None]


class NativeTransferRejected(RuntimeError):
    """Native value movement failed (insufficient balance or the receiver rejected it)."""


def _system_clock() -> int:
    return int(time.time())


class World:
    def __init__(self, *, state: Optional[Json] = None, clock: Optional[Callable[[], int]] = None) -> None:
        st = copy.deepcopy(state) if isinstance(state, dict) else {}
        st.setdefault("native", {})
        st.setdefault("tokens", {})
        self.state: Json = st
        self._clock = clock or _system_clock
        self._hooks: Dict[str, ReceiveHook] = {}
        self._snapshots: List[Json] = []

    # ----------------------------
    # Clock
    # ----------------------------

    def now(self) -> int:
        return int(self._clock())

    # ----------------------------
    # Transactions
    # ----------------------------

    @contextmanager
    def transaction(self) -> Iterator["World"]:
        self._snapshots.append(copy.deepcopy(self.state))
        try:
            yield self
        except BaseException:
            self.state = self._snapshots.pop()
            raise
        else:
            self._snapshots.pop()

    @property
    def in_transaction(self) -> bool:
        return bool(self._snapshots)

    # ----------------------------
    # Native currency
    # ----------------------------

    def native_balance(self, addr: str) -> int:
        return int(self.state["native"].get(addr, 0))

    def credit_native(self, addr: str, amount: int) -> None:
        """Mint native value to `addr` (genesis / test setup)."""
        if int(amount) < 0:
            raise ValueError("credit amount must be >= 0")
        native = self.state["native"]
        native[addr] = int(native.get(addr, 0)) + int(amount)

    def set_receive_hook(self, addr: str, hook: Optional[ReceiveHook]) -> None:
        if hook is None:
            self._hooks.pop(addr, None)
        else:
            self._hooks[addr] = hook

    def send_native(self, frm: str, to: str, amount: int) -> None:
        """Move native value and run the receiver's hook.

        Raises NativeTransferRejected on insufficient balance or if the hook raises;
        in both cases the movement (and anything the hook changed) is undone.
        """
        amt = int(amount)
        if amt < 0:
            raise NativeTransferRejected("negative_amount")

        try:
            with self.transaction():
                native = self.state["native"]
                bal = int(native.get(frm, 0))
                if bal < amt:
                    raise NativeTransferRejected(f"insufficient_balance:{frm}:{bal}<{amt}")
                native[frm] = bal - amt
                native[to] = int(native.get(to, 0)) + amt

                hook = self._hooks.get(to)
                if hook is not None:
                    hook(frm, amt)
        except NativeTransferRejected:
            raise
        except Exception as e:
            raise NativeTransferRejected(f"receiver_rejected:{to}:{e}") from e

    # ----------------------------
    # Tokens
    # ----------------------------

    def deploy_token(self, token_id: str, *, return_style: str = "bool", fee_bps: int = 0) -> TokenContract:
        tid = str(token_id or "").strip()
        if not tid:
            raise ValueError("token_id must be a non-empty string")
        tokens = self.state["tokens"]
        if tid in tokens:
            raise ValueError(f"token already deployed: {tid}")
        tokens[tid] = TokenContract.new_record(return_style=return_style, fee_bps=fee_bps)
        return self.token(tid)

    def has_token(self, token_id: str) -> bool:
        return str(token_id) in self.state["tokens"]

    def token(self, token_id: str) -> TokenContract:
        if not self.has_token(token_id):
            raise KeyError(f"unknown token: {token_id}")
        # The contract reads its record through the world on every call so a
        # rollback (which replaces self.state) is always observed.
        return TokenContract(token_id=str(token_id), world=self)

    # ----------------------------
    # Persistence
    # ----------------------------

    def to_json(self) -> Json:
        return copy.deepcopy(self.state)
