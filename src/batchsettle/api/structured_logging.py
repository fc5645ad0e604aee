# src/batchsettle/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from batchsettle.runtime.structured_logging import log_event

Json = Dict[str, Any]

_OFF = {"0", "false", "no", "n", "off"}


def _flag(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw not in _OFF


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One JSONL line per HTTP request on the `batchsettle.http` logger.

    Settlement and admin requests carry the caller address so a log line can be
    matched to the BatchSettled / admin events it produced. Requests slower than
    BATCHSETTLE_SLOW_REQUEST_MS are logged at WARNING.

    Controls:
      - BATCHSETTLE_LOG_REQUESTS=0 to disable (default on)
      - BATCHSETTLE_LOG_HEALTH=1 to also log /v1/health probes (default off)
      - BATCHSETTLE_SLOW_REQUEST_MS (default 1000)
    """

    def __init__(self, app, *, quiet_paths: Tuple[str, ...] = ("/v1/health",)) -> None:
        super().__init__(app)
        self._enabled = _flag("BATCHSETTLE_LOG_REQUESTS", True)
        self._quiet_paths = () if _flag("BATCHSETTLE_LOG_HEALTH", False) else quiet_paths
        try:
            self._slow_ms = int((os.environ.get("BATCHSETTLE_SLOW_REQUEST_MS") or "1000").strip())
        except ValueError:
            self._slow_ms = 1000
        self._logger = logging.getLogger("batchsettle.http")

    def _quiet(self, path: str) -> bool:
        return any(path.startswith(p) for p in self._quiet_paths)

    async def dispatch(self, request: Request, call_next):
        path = str(request.url.path or "")
        if not self._enabled or self._quiet(path):
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            status = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception as e:
            err = type(e).__name__
            raise
        finally:
            duration_ms = int((time.monotonic() - started) * 1000)
            fields: Json = {
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": duration_ms,
            }
            caller = request.headers.get("x-batchsettle-caller")
            if caller:
                fields["caller"] = caller.strip()
            if err is not None:
                fields["error"] = err
            if duration_ms >= self._slow_ms:
                self._logger.warning("slow_request path=%s duration_ms=%d", path, duration_ms)
            log_event(self._logger, "http_request", **fields)
