from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from batchsettle.ledger.constants import ENGINE_ADDRESS
from batchsettle.runtime import events as ev
from batchsettle.runtime.engine import SettlementEngine
from batchsettle.runtime.errors import FundingMismatchError
from batchsettle.runtime.sqlite_db import SqliteDB, SqliteStateStore
from batchsettle.runtime.world import World
from conftest import FEE_SINK, OWNER, PAYER, FakeClock, addr


def test_restart_restores_balances_governance_and_events(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("BATCHSETTLE_MODE", "dev")
    db_path = str(tmp_path / "engine.db")
    clock = FakeClock()

    store = SqliteStateStore.open(db_path)
    assert not store.exists()

    world = World(clock=clock)
    token = world.deploy_token("USDX")
    token.mint(PAYER, 1_000_000)
    token.set_allowance(PAYER, ENGINE_ADDRESS, 1_000_000)

    eng = SettlementEngine.create(world=world, owner=OWNER, fee_bps=10, fee_recipient=FEE_SINK, store=store)
    assert store.exists()

    eng.settle_token(PAYER, "USDX", [addr(1), addr(2)], [1_000, 2_000])
    eng.set_max_recipients(OWNER, 50)
    prop = eng.propose_fee_update(OWNER, 25, addr(0xFEE2))

    eng2 = SettlementEngine.restore(store=SqliteStateStore.open(db_path), clock=clock)

    assert eng2.world.token("USDX").balance_of(addr(1)) == 1_000
    assert eng2.world.token("USDX").balance_of(addr(2)) == 2_000
    assert eng2.world.token("USDX").balance_of(FEE_SINK) == 3
    assert eng2.governance.max_recipients == 50
    assert eng2.governance.pending == prop
    assert [e.name for e in eng2.events.events] == [ev.BATCH_SETTLED, ev.LIMITS_CHANGED, ev.FEE_UPDATE_PROPOSED]

    # the restored timelock still holds, then releases
    clock.advance(3600)
    eng2.finalize_fee_update(OWNER)
    assert eng2.governance.fee_bps == 25
    assert eng2.events.events[-1].seq == 3


def test_failed_call_is_not_persisted(tmp_path: Path) -> None:
    db_path = str(tmp_path / "engine.db")
    world = World(clock=FakeClock())
    world.credit_native(PAYER, 100)
    eng = SettlementEngine.create(
        world=world, owner=OWNER, fee_bps=10, fee_recipient=FEE_SINK, store=SqliteStateStore.open(db_path)
    )

    with pytest.raises(FundingMismatchError):
        eng.settle_native(PAYER, [addr(1)], [50], value=50)  # fee missing

    store = SqliteStateStore.open(db_path)
    assert store.read_events() == []
    assert store.read()["world"]["native"][PAYER] == 100


def test_failed_store_commit_keeps_events_queued_for_next_commit(tmp_path: Path, monkeypatch) -> None:
    db_path = str(tmp_path / "engine.db")
    clock = FakeClock()
    store = SqliteStateStore.open(db_path)
    eng = SettlementEngine.create(world=World(clock=clock), owner=OWNER, fee_bps=10, fee_recipient=FEE_SINK, store=store)
    eng.set_max_recipients(OWNER, 100)

    real_commit = store.commit
    calls = []

    def _flaky_commit(snapshot, events=None):
        calls.append(len(events or []))
        if len(calls) == 1:
            raise sqlite3.OperationalError("disk I/O error")
        return real_commit(snapshot, events)

    monkeypatch.setattr(store, "commit", _flaky_commit)
    with pytest.raises(sqlite3.OperationalError):
        eng.set_max_recipients(OWNER, 101)
    # applied in memory; its event waits for the next commit
    assert eng.governance.max_recipients == 101

    eng.pause(OWNER)
    assert calls == [1, 2]
    assert [e.seq for e in SqliteStateStore.open(db_path).read_events()] == [0, 1, 2]

    eng2 = SettlementEngine.restore(store=SqliteStateStore.open(db_path), clock=clock)
    assert eng2.governance.max_recipients == 101
    assert eng2.governance.paused
    eng2.unpause(OWNER)
    eng2.set_max_recipients(OWNER, 120)

    seqs = [e.seq for e in SqliteStateStore.open(db_path).read_events()]
    assert seqs == [0, 1, 2, 3, 4]


def test_schema_version_guard(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "v.db"))
    db.init_schema()
    with db.write_tx() as con:
        con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")

    with pytest.raises(RuntimeError, match="schema_version mismatch"):
        db.init_schema()
