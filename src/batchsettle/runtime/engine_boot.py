# src/batchsettle/runtime/engine_boot.py

from __future__ import annotations

import logging
from typing import Callable, Optional

from batchsettle.runtime.engine import SettlementEngine
from batchsettle.runtime.engine_config import EngineConfig, load_engine_config
from batchsettle.runtime.genesis import apply_genesis_to_world, parse_genesis
from batchsettle.runtime.sqlite_db import SqliteStateStore
from batchsettle.runtime.structured_logging import log_event
from batchsettle.runtime.world import World

_log = logging.getLogger("batchsettle.boot")


def build_engine(
    cfg: Optional[EngineConfig] = None,
    *,
    clock: Optional[Callable[[], int]] = None,
) -> SettlementEngine:
    """
    Build a SettlementEngine from an explicit config or, if omitted, from
    BATCHSETTLE_CONFIG_PATH / defaults.

    With a db_path, an existing snapshot wins over the config's governance
    values and genesis; the config only seeds a brand-new database.
    """
    c = cfg or load_engine_config()

    store: Optional[SqliteStateStore] = None
    if c.db_path.strip():
        store = SqliteStateStore.open(c.db_path)
        if store.exists():
            engine = SettlementEngine.restore(store=store, clock=clock)
            log_event(_log, "engine_restored", db_path=c.db_path, events=len(engine.events.events))
            return engine

    world = World(clock=clock)
    seeded = apply_genesis_to_world(world, parse_genesis(c.genesis))

    engine = SettlementEngine.create(
        world=world,
        owner=c.owner,
        fee_bps=c.fee_bps,
        fee_recipient=c.fee_recipient,
        max_recipients=c.max_recipients,
        min_fee_delay_s=c.min_fee_delay_s,
        address=c.engine_address,
        store=store,
    )
    log_event(_log, "engine_created", mode=c.mode, persistent=store is not None, genesis_applied=seeded)
    return engine
