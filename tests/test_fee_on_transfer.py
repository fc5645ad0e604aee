from __future__ import annotations

import pytest

from batchsettle.runtime import events as ev
from batchsettle.runtime.errors import AccessError, FundingMismatchError, TransferFailure
from conftest import OWNER, PAYER, addr


def _fot_token(world, engine, *, fee_bps=100):
    token = world.deploy_token("FOT", fee_bps=fee_bps)
    token.mint(PAYER, 10**9)
    token.set_allowance(PAYER, engine.address, 10**9)
    return token


def test_flagged_short_pull_rejected_before_distribution(world, engine) -> None:
    token = _fot_token(world, engine)
    engine.set_fee_on_transfer_flag(OWNER, "FOT", True)
    before = world.to_json()

    with pytest.raises(FundingMismatchError) as ei:
        engine.settle_token(PAYER, "FOT", [addr(1), addr(2)], [1_000, 2_000])

    assert ei.value.reason == "fee_on_transfer_shortfall"
    assert world.to_json() == before
    assert token.balance_of(addr(1)) == 0
    assert engine.events.by_name(ev.BATCH_SETTLED) == []


def test_flagged_short_pull_rejected_in_best_effort_mode(world, engine) -> None:
    _fot_token(world, engine)
    engine.set_fee_on_transfer_flag(OWNER, "FOT", True)
    with pytest.raises(FundingMismatchError):
        engine.settle_token_best_effort(PAYER, "FOT", [addr(1)], [1_000])
    assert engine.events.by_name(ev.TRANSFER_FAILED) == []


def test_unflagged_short_pull_still_cannot_overpay(world, engine) -> None:
    token = _fot_token(world, engine)
    # Without the flag the shortfall surfaces as a failed payout and the batch rolls back.
    with pytest.raises(TransferFailure):
        engine.settle_token(PAYER, "FOT", [addr(1)], [10_000])
    assert token.balance_of(PAYER) == 10**9


def test_flagged_token_without_actual_fee_settles(world, engine) -> None:
    token = _fot_token(world, engine, fee_bps=0)
    engine.set_fee_on_transfer_flag(OWNER, "FOT", True)
    engine.settle_token(PAYER, "FOT", [addr(1)], [10_000])
    assert token.balance_of(addr(1)) == 10_000


def test_flag_registry_is_owner_only_and_reversible(engine) -> None:
    with pytest.raises(AccessError):
        engine.set_fee_on_transfer_flag(PAYER, "FOT", True)

    engine.set_fee_on_transfer_flag(OWNER, "FOT", True)
    assert engine.governance.is_fee_on_transfer("FOT")
    engine.set_fee_on_transfer_flag(OWNER, "FOT", False)
    assert not engine.governance.is_fee_on_transfer("FOT")

    flags = [e.fields["flag"] for e in engine.events.by_name(ev.FEE_ON_TRANSFER_FLAG_SET)]
    assert flags == [True, False]
