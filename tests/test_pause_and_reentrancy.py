from __future__ import annotations

import threading

import pytest

from batchsettle.runtime import events as ev
from batchsettle.runtime import metrics
from batchsettle.runtime.errors import FundingMismatchError, StateError, TransferFailure
from batchsettle.runtime.guard import ReentrancyGuard
from conftest import FEE_SINK, OWNER, PAYER, addr


def _funded_token(world, engine):
    token = world.deploy_token("USDX")
    token.mint(PAYER, 10**9)
    token.set_allowance(PAYER, engine.address, 10**9)
    return token


def test_pause_blocks_all_settlement_paths(world, engine) -> None:
    _funded_token(world, engine)
    world.credit_native(PAYER, 10**9)
    engine.pause(OWNER)

    for call in (
        lambda: engine.settle_native(PAYER, [addr(1)], [100], value=101),
        lambda: engine.settle_token(PAYER, "USDX", [addr(1)], [100]),
        lambda: engine.settle_token_best_effort(PAYER, "USDX", [addr(1)], [100]),
    ):
        with pytest.raises(StateError) as ei:
            call()
        assert ei.value.reason == "engine_paused"

    engine.unpause(OWNER)
    engine.settle_token(PAYER, "USDX", [addr(1)], [100])


def test_pause_unpause_are_idempotent_and_always_available(engine) -> None:
    engine.pause(OWNER)
    engine.pause(OWNER)
    assert engine.governance.paused
    engine.unpause(OWNER)
    engine.unpause(OWNER)
    assert not engine.governance.paused
    assert len(engine.events.by_name(ev.PAUSED)) == 1
    assert len(engine.events.by_name(ev.UNPAUSED)) == 1


def test_reentrant_settle_from_receive_hook_is_rejected(world, engine) -> None:
    world.credit_native(PAYER, 10**9)
    attacker = addr(0xBAD)
    world.credit_native(attacker, 10**6)
    seen = []

    def _reenter(sender, amount):
        try:
            engine.settle_native(attacker, [attacker], [1_000], value=1_001)
        except StateError as e:
            seen.append(e)

    world.set_receive_hook(attacker, _reenter)
    engine.settle_native(PAYER, [attacker, addr(2)], [500, 500], value=1_001)

    assert len(seen) == 1
    assert seen[0].reason == "guard_already_held"
    assert len(engine.events.by_name(ev.BATCH_SETTLED)) == 1
    assert world.native_balance(attacker) == 10**6 + 500
    assert world.native_balance(FEE_SINK) == 1
    assert not engine.guard.held


def test_reentry_that_propagates_rolls_back_outer_call(world, engine) -> None:
    world.credit_native(PAYER, 10**9)
    attacker = addr(0xBAD)

    def _reenter(sender, amount):
        engine.settle_native(attacker, [attacker], [1], value=2)

    world.set_receive_hook(attacker, _reenter)
    with pytest.raises(TransferFailure):
        engine.settle_native(PAYER, [attacker], [500], value=501)

    assert world.native_balance(PAYER) == 10**9
    assert world.native_balance(attacker) == 0
    assert not engine.guard.held


def test_guard_released_after_failure(world, engine) -> None:
    world.credit_native(PAYER, 10)
    with pytest.raises(FundingMismatchError):
        engine.settle_native(PAYER, [addr(1)], [1], value=5)
    assert not engine.guard.held
    engine.settle_native(PAYER, [addr(1)], [1], value=2)
    assert world.native_balance(addr(1)) == 1


def test_guard_rejects_second_thread_without_blocking() -> None:
    guard = ReentrancyGuard()
    entered = threading.Event()
    release = threading.Event()
    errors = []

    def _holder():
        with guard.hold("first"):
            entered.set()
            release.wait(5)

    t = threading.Thread(target=_holder)
    t.start()
    assert entered.wait(5)
    try:
        with guard.hold("second"):
            pass
    except StateError as e:
        errors.append(e)
    finally:
        release.set()
        t.join(5)

    assert len(errors) == 1
    assert errors[0].details == {"op": "second", "held_by": "first"}
    assert not guard.held


def test_admin_change_from_hook_is_undone_when_outer_call_fails(world, engine) -> None:
    world.credit_native(PAYER, 10**9)
    owner_hook_calls = []

    def _owner_hook(sender, amount):
        engine.pause(OWNER)
        owner_hook_calls.append(amount)

    def _reject(sender, amount):
        raise RuntimeError("nope")

    world.set_receive_hook(OWNER, _owner_hook)
    world.set_receive_hook(addr(9), _reject)

    with pytest.raises(TransferFailure):
        engine.settle_native(PAYER, [OWNER, addr(9)], [10, 10], value=21)

    assert owner_hook_calls == [10]
    assert not engine.governance.paused
    assert engine.events.by_name(ev.PAUSED) == []
    assert metrics.snapshot()["gauges"]["paused"] == 0
