from __future__ import annotations

import os
import threading
from typing import List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from batchsettle.api.errors import ApiError, status_for_kind
from batchsettle.api.routes import public_router
from batchsettle.api.security import RequestSizeLimitMiddleware
from batchsettle.api.structured_logging import RequestLogMiddleware
from batchsettle.runtime.engine_boot import build_engine as _build_engine
from batchsettle.runtime.engine_config import load_engine_config
from batchsettle.runtime.errors import SettlementError
from batchsettle.runtime.structured_logging import configure_structured_logging


def build_engine():
    """Build the SettlementEngine for API runtime.

    Tests monkeypatch `batchsettle.api.app.build_engine` to attach a prepared
    engine without touching config files.
    """
    return _build_engine(load_engine_config())


def _parse_cors_origins() -> List[str]:
    """Parse CORS origins.

    Policy:
      - BATCHSETTLE_CORS_ORIGINS unset/empty -> CORS disabled
      - Wildcard "*" is rejected in BATCHSETTLE_MODE=prod
    """
    raw = os.environ.get("BATCHSETTLE_CORS_ORIGINS", "").strip()
    mode = os.environ.get("BATCHSETTLE_MODE", "prod").strip().lower()

    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in BATCHSETTLE_CORS_ORIGINS."
            )
        return ["*"]
    return origins


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SettlementError)
    async def _settlement_error(request: Request, exc: SettlementError) -> JSONResponse:
        return JSONResponse(
            status_code=status_for_kind(exc.kind),
            content={
                "ok": False,
                "error": {
                    "code": exc.code,
                    "kind": exc.kind,
                    "reason": exc.reason,
                    "details": exc.details or {},
                },
            },
        )

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=int(exc.status_code),
            content={"ok": False, "error": {"code": exc.code, "message": exc.message, "details": exc.details}},
        )


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load engine config and attach app.state.engine via build_engine()
      - False: no engine; only /v1/health and /v1/metrics are useful
    """
    configure_structured_logging()
    mode = os.environ.get("BATCHSETTLE_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="BatchSettle API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="BatchSettle API")

    app.state.engine = build_engine() if boot_runtime else None
    app.state.engine_lock = threading.Lock()

    _install_error_handlers(app)

    # --- Middleware ---
    # Added last runs first: request logging wraps the size limiter.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    cors_origins = _parse_cors_origins()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-BatchSettle-Caller", "X-BatchSettle-Admin-Token"],
        )

    app.include_router(public_router)
    return app
