from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from batchsettle.runtime.errors import StateError


class ReentrancyGuard:
    """
    Binary execution lock around fund-moving entry points.

    Acquisition never blocks: a second entry while the lock is held (a receive hook
    calling back in, or another thread) is rejected with StateError instead of being
    queued. The lock is released on every exit path.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder = ""

    @property
    def held(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self, op: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise StateError("reentrant_call", "guard_already_held", {"op": op, "held_by": self._holder})
        self._holder = str(op)
        try:
            yield
        finally:
            self._holder = ""
            self._lock.release()
