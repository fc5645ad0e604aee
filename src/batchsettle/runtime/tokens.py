# src/batchsettle/runtime/tokens.py
from __future__ import annotations

"""Token contracts living in the World.

A token is called the way a contract is called on-chain: `call(caller, method, *args)`
returns raw return data (bytes) or raises TokenRevert. What the data looks like
depends on the token's return style:

  "bool"   conforming: success returns ABI-encoded true (32 bytes)
  "none"   non-conforming: success returns empty data, failure reverts
  "false"  non-conforming: failure returns ABI-encoded false instead of reverting

Record shape (world.state["tokens"][token_id]):
  {"return_style": str, "fee_bps": int, "balances": {addr: int},
   "allowances": {owner: {spender: int}}, "blocked": [addr, ...]}

Fee-on-transfer tokens (fee_bps > 0) burn floor(amount * fee_bps / 10_000) of every
movement, so the receiver gets less than requested.
"""

from typing import TYPE_CHECKING, Any, Dict

from batchsettle.ledger.constants import BPS_DENOMINATOR

if TYPE_CHECKING:  # pragma: no cover
    from batchsettle.runtime.world import World

Json = Dict[str, Any]

RETURN_STYLES = {"bool", "none", "false"}


class TokenRevert(RuntimeError):
    """Token call reverted. State is unchanged."""


def encode_bool(v: bool) -> bytes:
    return (1 if v else 0).to_bytes(32, "big")


def encode_uint(v: int) -> bytes:
    return int(v).to_bytes(32, "big")


class TokenContract:
    def __init__(self, *, token_id: str, world: "World") -> None:
        self.token_id = str(token_id)
        self._world = world

    @staticmethod
    def new_record(*, return_style: str = "bool", fee_bps: int = 0) -> Json:
        style = str(return_style or "").strip().lower()
        if style not in RETURN_STYLES:
            raise ValueError(f"return_style must be one of {sorted(RETURN_STYLES)}; got: {return_style!r}")
        fb = int(fee_bps)
        if not (0 <= fb < BPS_DENOMINATOR):
            raise ValueError(f"fee_bps must be in [0, {BPS_DENOMINATOR}); got: {fee_bps}")
        return {"return_style": style, "fee_bps": fb, "balances": {}, "allowances": {}, "blocked": []}

    @property
    def _rec(self) -> Json:
        return self._world.state["tokens"][self.token_id]

    @property
    def return_style(self) -> str:
        return str(self._rec.get("return_style") or "bool")

    @property
    def fee_bps(self) -> int:
        return int(self._rec.get("fee_bps") or 0)

    # ----------------------------
    # Setup helpers (not part of the call surface)
    # ----------------------------

    def mint(self, to: str, amount: int) -> None:
        bals = self._rec["balances"]
        bals[to] = int(bals.get(to, 0)) + int(amount)

    def set_allowance(self, owner: str, spender: str, amount: int) -> None:
        allowances = self._rec["allowances"]
        allowances.setdefault(owner, {})[spender] = int(amount)

    def block(self, addr: str) -> None:
        """Make every transfer *to* addr fail (e.g. a blacklisted receiver)."""
        blocked = self._rec["blocked"]
        if addr not in blocked:
            blocked.append(addr)

    def unblock(self, addr: str) -> None:
        blocked = self._rec["blocked"]
        if addr in blocked:
            blocked.remove(addr)

    def balance_of(self, holder: str) -> int:
        return int(self._rec["balances"].get(holder, 0))

    def allowance(self, owner: str, spender: str) -> int:
        return int(self._rec["allowances"].get(owner, {}).get(spender, 0))

    # ----------------------------
    # Call surface
    # ----------------------------

    def call(self, caller: str, method: str, *args: Any) -> bytes:
        m = str(method)
        if m == "balanceOf":
            (holder,) = args
            return encode_uint(self.balance_of(str(holder)))
        if m == "approve":
            spender, amount = args
            self.set_allowance(caller, str(spender), int(amount))
            return self._success()
        if m == "transfer":
            to, amount = args
            return self._move(str(caller), str(to), int(amount), spender=None)
        if m == "transferFrom":
            frm, to, amount = args
            return self._move(str(frm), str(to), int(amount), spender=str(caller))
        raise TokenRevert(f"unknown_method:{m}")

    def _success(self) -> bytes:
        if self.return_style == "none":
            return b""
        return encode_bool(True)

    def _fail(self, reason: str) -> bytes:
        if self.return_style == "false":
            return encode_bool(False)
        raise TokenRevert(reason)

    def _move(self, frm: str, to: str, amount: int, *, spender: str | None) -> bytes:
        rec = self._rec
        if amount < 0:
            return self._fail("negative_amount")
        if to in rec["blocked"]:
            return self._fail(f"receiver_blocked:{to}")

        bals = rec["balances"]
        bal = int(bals.get(frm, 0))
        if bal < amount:
            return self._fail(f"insufficient_balance:{frm}")

        if spender is not None:
            allowed = self.allowance(frm, spender)
            if allowed < amount:
                return self._fail(f"insufficient_allowance:{frm}:{spender}")
            rec["allowances"].setdefault(frm, {})[spender] = allowed - amount

        burned = (amount * self.fee_bps) // BPS_DENOMINATOR
        bals[frm] = bal - amount
        bals[to] = int(bals.get(to, 0)) + (amount - burned)
        return self._success()
