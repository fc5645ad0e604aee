# src/batchsettle/runtime/transport.py
from __future__ import annotations

"""Value transport adapters.

One uniform success contract over three kinds of asset:

  - native currency        success = the value movement did not fail
  - conforming tokens      success = call completed and returned ABI `true`
  - non-conforming tokens  success = call completed and returned no data at all

Every adapter exposes the same capability set:

  transfer(to, amount)             must succeed, else TransferFailure
  try_transfer(to, amount) -> bool never raises for a failed movement
  transfer_from(frm, to, amount)   must succeed, else TransferFailure
  balance_of(holder) -> int

Return-data decoding lives only here; settlement code never looks at raw bytes.
"""

import logging
from typing import Optional

from batchsettle.ledger.constants import NATIVE_ASSET
from batchsettle.runtime.errors import FundingMismatchError, TransferFailure
from batchsettle.runtime.tokens import TokenRevert
from batchsettle.runtime.world import NativeTransferRejected, World

_log = logging.getLogger("batchsettle.transport")


def decode_success(data: Optional[bytes]) -> bool:
    """Token call return-data check.

    Empty data is success (tokens that return nothing). Otherwise the first word
    must ABI-decode to boolean true; anything else (false, short data, a word
    that is not 0/1) is failure.
    """
    if not data:
        return True
    if len(data) < 32:
        return False
    word = int.from_bytes(data[:32], "big")
    return word == 1


class ValueTransport:
    """Moves one asset out of (or into) the balance held by `holder`."""

    asset_id: str = ""

    def __init__(self, *, world: World, holder: str) -> None:
        self.world = world
        self.holder = str(holder)

    def try_transfer(self, to: str, amount: int) -> bool:
        raise NotImplementedError

    def _try_transfer_from(self, frm: str, to: str, amount: int) -> bool:
        raise NotImplementedError

    def balance_of(self, holder: str) -> int:
        raise NotImplementedError

    def transfer(self, to: str, amount: int) -> None:
        if not self.try_transfer(to, amount):
            raise TransferFailure(
                "transfer_failed",
                "transfer_not_successful",
                {"asset": self.asset_id, "to": to, "amount": int(amount)},
            )

    def transfer_from(self, frm: str, to: str, amount: int) -> None:
        if not self._try_transfer_from(frm, to, amount):
            raise TransferFailure(
                "transfer_failed",
                "transfer_from_not_successful",
                {"asset": self.asset_id, "from": frm, "to": to, "amount": int(amount)},
            )


class NativeTransport(ValueTransport):
    asset_id = NATIVE_ASSET

    def try_transfer(self, to: str, amount: int) -> bool:
        return self._try_transfer_from(self.holder, to, amount)

    def _try_transfer_from(self, frm: str, to: str, amount: int) -> bool:
        try:
            self.world.send_native(frm, to, int(amount))
        except NativeTransferRejected as e:
            _log.debug("native transfer rejected: %s", e)
            return False
        return True

    def balance_of(self, holder: str) -> int:
        return self.world.native_balance(holder)


class TokenTransport(ValueTransport):
    """Decode-tolerant token adapter (conforming and non-conforming tokens alike).

    When the token is flagged fee-on-transfer, `transfer_from` measures the
    receiver's balance around the pull and fails with FundingMismatchError if the
    delta is short of the requested amount.
    """

    def __init__(self, *, world: World, holder: str, token_id: str, fee_on_transfer: bool = False) -> None:
        super().__init__(world=world, holder=holder)
        self.asset_id = str(token_id)
        self.fee_on_transfer = bool(fee_on_transfer)
        self._token = world.token(token_id)

    def _call_ok(self, method: str, *args) -> bool:
        try:
            data = self._token.call(self.holder, method, *args)
        except TokenRevert as e:
            _log.debug("token call reverted: token=%s method=%s err=%s", self.asset_id, method, e)
            return False
        return decode_success(data)

    def try_transfer(self, to: str, amount: int) -> bool:
        return self._call_ok("transfer", to, int(amount))

    def _try_transfer_from(self, frm: str, to: str, amount: int) -> bool:
        return self._call_ok("transferFrom", frm, to, int(amount))

    def balance_of(self, holder: str) -> int:
        data = self._token.call(self.holder, "balanceOf", holder)
        return int.from_bytes(data[:32], "big") if data else 0

    def transfer_from(self, frm: str, to: str, amount: int) -> None:
        if not self.fee_on_transfer:
            super().transfer_from(frm, to, amount)
            return

        before = self.balance_of(to)
        super().transfer_from(frm, to, amount)
        received = self.balance_of(to) - before
        if received < int(amount):
            raise FundingMismatchError(
                "funding_mismatch",
                "fee_on_transfer_shortfall",
                {"asset": self.asset_id, "requested": int(amount), "received": int(received)},
            )


def transport_for(
    world: World,
    *,
    asset_id: str,
    holder: str,
    fee_on_transfer: bool = False,
) -> ValueTransport:
    if asset_id == NATIVE_ASSET:
        return NativeTransport(world=world, holder=holder)
    return TokenTransport(
        world=world,
        holder=holder,
        token_id=asset_id,
        fee_on_transfer=fee_on_transfer,
    )

