from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def v1_health(request: Request):
    """Liveness plus a little engine posture. Never raises."""
    eng = getattr(request.app.state, "engine", None)
    if eng is None:
        return {"ok": True, "service": "batchsettle", "engine": False}
    gov = eng.governance
    return {
        "ok": True,
        "service": "batchsettle",
        "engine": True,
        "paused": gov.paused,
        "fee_bps": gov.fee_bps,
        "max_recipients": gov.max_recipients,
        "pending_fee_update": gov.pending is not None,
        "persistent": eng.store is not None,
    }
