from __future__ import annotations

from fastapi import APIRouter, Request

from batchsettle.api.routes_parts.common import _run
from batchsettle.api.schemas import (
    FeeOnTransferRequest,
    FeeProposeRequest,
    MaxRecipientsRequest,
    OwnershipRequest,
    SweepNativeRequest,
    SweepTokenRequest,
)
from batchsettle.api.security import require_admin

router = APIRouter()


@router.post("/admin/pause")
def v1_admin_pause(request: Request):
    caller = require_admin(request)
    _run(request, lambda eng: eng.pause(caller))
    return {"ok": True, "paused": True}


@router.post("/admin/unpause")
def v1_admin_unpause(request: Request):
    caller = require_admin(request)
    _run(request, lambda eng: eng.unpause(caller))
    return {"ok": True, "paused": False}


@router.post("/admin/max-recipients")
def v1_admin_max_recipients(body: MaxRecipientsRequest, request: Request):
    caller = require_admin(request)
    _run(request, lambda eng: eng.set_max_recipients(caller, body.max_recipients))
    return {"ok": True, "max_recipients": body.max_recipients}


@router.post("/admin/fee-on-transfer")
def v1_admin_fee_on_transfer(body: FeeOnTransferRequest, request: Request):
    caller = require_admin(request)
    _run(request, lambda eng: eng.set_fee_on_transfer_flag(caller, body.token, body.flag))
    return {"ok": True, "token": body.token, "flag": body.flag}


@router.post("/admin/fee/propose")
def v1_admin_fee_propose(body: FeeProposeRequest, request: Request):
    caller = require_admin(request)
    prop = _run(request, lambda eng: eng.propose_fee_update(caller, body.fee_bps, body.fee_recipient))
    return {"ok": True, "pending": prop.to_json()}


@router.post("/admin/fee/finalize")
def v1_admin_fee_finalize(request: Request):
    caller = require_admin(request)

    def _finalize(eng):
        eng.finalize_fee_update(caller)
        return eng.governance.fee_bps, eng.governance.fee_recipient

    fee_bps, fee_recipient = _run(request, _finalize)
    return {"ok": True, "fee_bps": fee_bps, "fee_recipient": fee_recipient}


@router.post("/admin/sweep/token")
def v1_admin_sweep_token(body: SweepTokenRequest, request: Request):
    caller = require_admin(request)
    receipt = _run(request, lambda eng: eng.sweep_token(caller, body.token, body.to))
    return {"ok": True, "receipt": receipt.to_json()}


@router.post("/admin/sweep/native")
def v1_admin_sweep_native(body: SweepNativeRequest, request: Request):
    caller = require_admin(request)
    receipt = _run(request, lambda eng: eng.sweep_native(caller, body.to))
    return {"ok": True, "receipt": receipt.to_json()}


@router.post("/admin/ownership")
def v1_admin_ownership(body: OwnershipRequest, request: Request):
    caller = require_admin(request)
    _run(request, lambda eng: eng.transfer_ownership(caller, body.new_owner))
    return {"ok": True, "owner": body.new_owner}
