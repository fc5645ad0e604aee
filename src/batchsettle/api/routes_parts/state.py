from __future__ import annotations

from fastapi import APIRouter, Request

from batchsettle.api.errors import ApiError
from batchsettle.api.routes_parts.common import _int_param, _run

router = APIRouter()


@router.get("/fee/quote")
def v1_fee_quote(request: Request):
    raw = (request.query_params.get("total") or "").strip()
    if not (raw.isascii() and raw.isdigit()):
        raise ApiError.bad_request("invalid_total", "total must be a non-negative integer", {"total": raw})
    total = int(raw)

    def _quote(eng):
        return eng.governance.fee_bps, eng.quote_fee(total)

    fee_bps, fee = _run(request, _quote)
    return {"ok": True, "total": str(total), "fee_bps": fee_bps, "fee": str(fee)}


@router.get("/governance")
def v1_governance(request: Request):
    gov = _run(request, lambda eng: eng.governance.to_json())
    return {"ok": True, "governance": gov}


@router.get("/balances/{asset}/{holder}")
def v1_balance(asset: str, holder: str, request: Request):
    bal = _run(request, lambda eng: eng.balance_of(asset, holder))
    return {"ok": True, "asset": asset, "holder": holder, "balance": str(bal)}


@router.get("/events")
def v1_events(request: Request):
    qp = request.query_params
    after = _int_param(qp.get("after"), -1)
    limit = max(1, min(500, _int_param(qp.get("limit"), 100)))
    name = (qp.get("name") or "").strip() or None

    items = _run(request, lambda eng: eng.events.since(after, limit=limit, name=name))
    return {"ok": True, "items": [e.to_json() for e in items]}
