from __future__ import annotations

import threading
from typing import Any, Callable, Dict, TypeVar

from fastapi import Request

from batchsettle.api.errors import ApiError
from batchsettle.runtime.engine import SettlementEngine

Json = Dict[str, Any]
T = TypeVar("T")


def _engine(request: Request) -> SettlementEngine:
    eng = getattr(request.app.state, "engine", None)
    if eng is None:
        raise ApiError.internal("not_ready", "engine not attached to app.state", {})
    return eng


def _engine_lock(request: Request) -> threading.Lock:
    lock = getattr(request.app.state, "engine_lock", None)
    if lock is None:
        raise ApiError.internal("not_ready", "engine lock not attached to app.state", {})
    return lock


def _run(request: Request, fn: Callable[[SettlementEngine], T]) -> T:
    """Run one engine call with requests serialized per app.

    Route handlers execute on a threadpool; without this a second request would
    hit the reentrancy guard instead of waiting its turn.
    """
    eng = _engine(request)
    with _engine_lock(request):
        return fn(eng)


def _int_param(v: Any, default: int) -> int:
    if v is None:
        return int(default)
    s = str(v).strip()
    if s == "":
        return int(default)
    try:
        return int(s)
    except ValueError:
        return int(default)
