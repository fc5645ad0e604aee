from __future__ import annotations

from fastapi import APIRouter, Request

from batchsettle.api.routes_parts.common import _run
from batchsettle.api.schemas import SettleNativeRequest, SettleTokenRequest
from batchsettle.api.security import require_caller

router = APIRouter()


@router.post("/settle/native")
def v1_settle_native(body: SettleNativeRequest, request: Request):
    caller = require_caller(request)
    receipt = _run(request, lambda eng: eng.settle_native(caller, body.recipients, body.amounts, value=body.value))
    return {"ok": True, "receipt": receipt.to_json()}


@router.post("/settle/token")
def v1_settle_token(body: SettleTokenRequest, request: Request):
    caller = require_caller(request)
    receipt = _run(request, lambda eng: eng.settle_token(caller, body.token, body.recipients, body.amounts))
    return {"ok": True, "receipt": receipt.to_json()}


@router.post("/settle/token/best-effort")
def v1_settle_token_best_effort(body: SettleTokenRequest, request: Request):
    caller = require_caller(request)
    receipt = _run(
        request,
        lambda eng: eng.settle_token_best_effort(caller, body.token, body.recipients, body.amounts),
    )
    return {"ok": True, "receipt": receipt.to_json()}
