from __future__ import annotations

import os
import secrets
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from batchsettle.api.errors import ApiError
from batchsettle.util.addresses import is_valid_address

CALLER_HEADER = "x-batchsettle-caller"
ADMIN_TOKEN_HEADER = "x-batchsettle-admin-token"


def _truthy(v: str | None) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except ValueError:
        return int(default)


def require_caller(request: Request) -> str:
    """Caller identity for settlement and admin calls.

    Signing happens upstream; the API trusts X-BatchSettle-Caller as-is and only
    checks that it is a well-formed address.
    """
    caller = (request.headers.get(CALLER_HEADER) or "").strip()
    if not caller:
        raise ApiError.unauthorized("caller_missing", "X-BatchSettle-Caller header is required")
    if not is_valid_address(caller):
        raise ApiError.bad_request("caller_invalid", "X-BatchSettle-Caller is not a valid address", {"caller": caller})
    return caller


def require_admin(request: Request) -> str:
    """Admin routes: caller header plus the operator admin token.

    Fail-closed: with BATCHSETTLE_ADMIN_TOKEN unset, every admin call is refused.
    Ownership is still enforced by the engine afterwards.
    """
    expected = (os.environ.get("BATCHSETTLE_ADMIN_TOKEN") or "").strip()
    if not expected:
        raise ApiError.forbidden("admin_disabled", "admin API is disabled (BATCHSETTLE_ADMIN_TOKEN unset)")

    got = (request.headers.get(ADMIN_TOKEN_HEADER) or "").strip()
    if not got or not secrets.compare_digest(got.encode("utf-8"), expected.encode("utf-8")):
        raise ApiError.forbidden("admin_token_invalid", "missing or invalid admin token")

    return require_caller(request)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Fail-fast request size limiter.

    - Enforces Content-Length when present.
    - Also caps the buffered body for mutating requests (chunked uploads).

    Configure:
      BATCHSETTLE_MAX_REQUEST_BYTES (default: 1_000_000)
      BATCHSETTLE_SIZE_LIMIT_DISABLE=1 to disable
    """

    def __init__(
        self,
        app,
        *,
        max_bytes: Optional[int] = None,
        exempt_prefixes: Tuple[str, ...] = ("/docs", "/openapi.json", "/v1/health"),
    ):
        super().__init__(app)
        self._enabled = not _truthy(os.environ.get("BATCHSETTLE_SIZE_LIMIT_DISABLE"))
        if max_bytes is not None:
            self._max_bytes = int(max_bytes)
        else:
            self._max_bytes = _env_int("BATCHSETTLE_MAX_REQUEST_BYTES", 1_000_000)
        self._exempt_prefixes = exempt_prefixes

    def _too_large(self) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={"ok": False, "error": {"code": "request_too_large", "message": "Request body too large"}},
        )

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        path = request.url.path or ""
        for ex in self._exempt_prefixes:
            if path.startswith(ex):
                return await call_next(request)

        cl = request.headers.get("content-length")
        if cl:
            try:
                if int(cl) > self._max_bytes:
                    return self._too_large()
            except ValueError:
                # Malformed header; the buffered body cap below still applies.
                pass

        if (request.method or "").upper() in {"POST", "PUT", "PATCH"}:
            body = await request.body()
            if body and len(body) > self._max_bytes:
                return self._too_large()

        return await call_next(request)
