# src/batchsettle/api/routes.py
from __future__ import annotations

from fastapi import APIRouter

from batchsettle.api.routes_parts.admin import router as admin_router
from batchsettle.api.routes_parts.health import router as health_router
from batchsettle.api.routes_parts.metrics import router as metrics_router
from batchsettle.api.routes_parts.settle import router as settle_router
from batchsettle.api.routes_parts.state import router as state_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(settle_router, prefix="/v1", tags=["settle"])
public_router.include_router(state_router, prefix="/v1", tags=["state"])
public_router.include_router(admin_router, prefix="/v1", tags=["admin"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
