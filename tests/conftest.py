from __future__ import annotations

import sys
from pathlib import Path

# Ensure local "src/" takes precedence over any globally-installed "batchsettle" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

import pytest  # noqa: E402

from batchsettle.runtime import metrics  # noqa: E402
from batchsettle.runtime.engine import SettlementEngine  # noqa: E402
from batchsettle.runtime.world import World  # noqa: E402


def addr(n: int) -> str:
    return "0x" + format(int(n), "040x")


OWNER = addr(0xA11CE)
FEE_SINK = addr(0xFEE)
PAYER = addr(0xB0B)

T0 = 1_700_000_000


class FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = int(now)

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += int(seconds)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def world(clock: FakeClock) -> World:
    return World(clock=clock)


@pytest.fixture()
def engine(world: World) -> SettlementEngine:
    return SettlementEngine.create(world=world, owner=OWNER, fee_bps=10, fee_recipient=FEE_SINK)
