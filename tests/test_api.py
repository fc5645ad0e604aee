from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import batchsettle.api.app as app_mod
from batchsettle.api.app import create_app
from batchsettle.runtime.engine import SettlementEngine
from batchsettle.runtime.world import World
from conftest import FEE_SINK, OWNER, PAYER, FakeClock, addr

ADMIN_TOKEN = "s3cret-admin-token"


@pytest.fixture()
def api(monkeypatch):
    monkeypatch.setenv("BATCHSETTLE_MODE", "dev")
    monkeypatch.setenv("BATCHSETTLE_ADMIN_TOKEN", ADMIN_TOKEN)
    monkeypatch.setenv("BATCHSETTLE_METRICS_ENABLED", "1")

    clock = FakeClock()
    world = World(clock=clock)
    world.credit_native(PAYER, 10**9)
    token = world.deploy_token("USDX")
    token.mint(PAYER, 10**9)
    eng = SettlementEngine.create(world=world, owner=OWNER, fee_bps=10, fee_recipient=FEE_SINK)
    token.set_allowance(PAYER, eng.address, 10**9)

    monkeypatch.setattr(app_mod, "build_engine", lambda: eng)
    client = TestClient(create_app(boot_runtime=True))
    client.engine = eng
    client.clock = clock
    return client


def _as(caller: str, *, admin: bool = False) -> dict:
    h = {"X-BatchSettle-Caller": caller}
    if admin:
        h["X-BatchSettle-Admin-Token"] = ADMIN_TOKEN
    return h


def test_health(api) -> None:
    r = api.get("/v1/health")
    assert r.status_code == 200
    j = r.json()
    assert j["ok"] is True
    assert j["engine"] is True
    assert j["paused"] is False


def test_settle_native_and_token(api) -> None:
    r = api.post(
        "/v1/settle/native",
        json={"recipients": [addr(1), addr(2)], "amounts": [600, "400"], "value": "1001"},
        headers=_as(PAYER),
    )
    assert r.status_code == 200, r.text
    assert r.json()["receipt"] == {"asset": "native", "recipient_count": 2, "total": "1000", "fee": "1"}

    r = api.post(
        "/v1/settle/token",
        json={"token": "USDX", "recipients": [addr(3)], "amounts": [10_000]},
        headers=_as(PAYER),
    )
    assert r.status_code == 200, r.text

    r = api.get(f"/v1/balances/USDX/{addr(3)}")
    assert r.json()["balance"] == "10000"
    r = api.get(f"/v1/balances/native/{FEE_SINK}")
    assert r.json()["balance"] == "1"


def test_best_effort_reports_outcomes(api) -> None:
    api.engine.world.token("USDX").block(addr(2))
    r = api.post(
        "/v1/settle/token/best-effort",
        json={"token": "USDX", "recipients": [addr(1), addr(2), addr(3)], "amounts": [10, 20, 30]},
        headers=_as(PAYER),
    )
    assert r.status_code == 200, r.text
    rec = r.json()["receipt"]
    assert rec["sent_total"] == "40"
    assert rec["failed_total"] == "20"
    assert [o["succeeded"] for o in rec["outcomes"]] == [True, False, True]


@pytest.mark.parametrize(
    "body,status,kind",
    [
        ({"recipients": [], "amounts": [], "value": 0}, 400, "validation"),
        ({"recipients": [addr(1)], "amounts": [1, 2], "value": 3}, 400, "validation"),
        ({"recipients": ["0xdead"], "amounts": [1], "value": 2}, 400, "validation"),
        ({"recipients": [addr(1)], "amounts": [10_000], "value": 10_000}, 400, "funding"),
    ],
)
def test_settlement_errors_carry_kind(api, body, status, kind) -> None:
    r = api.post("/v1/settle/native", json=body, headers=_as(PAYER))
    assert r.status_code == status
    j = r.json()
    assert j["ok"] is False
    assert j["error"]["kind"] == kind


def test_transfer_failure_is_422(api) -> None:
    api.engine.world.token("USDX").block(addr(2))
    r = api.post(
        "/v1/settle/token",
        json={"token": "USDX", "recipients": [addr(1), addr(2)], "amounts": [1, 1]},
        headers=_as(PAYER),
    )
    assert r.status_code == 422
    assert r.json()["error"]["kind"] == "transfer"


def test_missing_caller_is_401(api) -> None:
    r = api.post("/v1/settle/native", json={"recipients": [addr(1)], "amounts": [1], "value": 2})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "caller_missing"


def test_admin_requires_token_and_owner(api, monkeypatch) -> None:
    r = api.post("/v1/admin/pause", headers=_as(OWNER))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "admin_token_invalid"

    r = api.post("/v1/admin/pause", headers=_as(PAYER, admin=True))
    assert r.status_code == 403
    assert r.json()["error"]["kind"] == "access"

    r = api.post("/v1/admin/pause", headers=_as(OWNER, admin=True))
    assert r.status_code == 200
    r = api.post(
        "/v1/settle/native",
        json={"recipients": [addr(1)], "amounts": [1], "value": 2},
        headers=_as(PAYER),
    )
    assert r.status_code == 409
    assert r.json()["error"]["reason"] == "engine_paused"

    monkeypatch.delenv("BATCHSETTLE_ADMIN_TOKEN")
    r = api.post("/v1/admin/unpause", headers=_as(OWNER, admin=True))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "admin_disabled"


def test_fee_timelock_over_http(api) -> None:
    new_sink = addr(0xFEE2)
    r = api.post("/v1/admin/fee/propose", json={"fee_bps": 20, "fee_recipient": new_sink}, headers=_as(OWNER, admin=True))
    assert r.status_code == 200
    assert r.json()["pending"]["new_fee_bps"] == 20

    r = api.post("/v1/admin/fee/finalize", headers=_as(OWNER, admin=True))
    assert r.status_code == 409

    api.clock.advance(3600)
    r = api.post("/v1/admin/fee/finalize", headers=_as(OWNER, admin=True))
    assert r.status_code == 200
    assert r.json()["fee_bps"] == 20

    r = api.get("/v1/fee/quote", params={"total": "1000000"})
    assert r.json()["fee"] == "2000"
    assert api.get("/v1/governance").json()["governance"]["fee_recipient"] == new_sink


@pytest.mark.parametrize("total", ["-5", "", "1.5", "²", "١٢"])
def test_fee_quote_rejects_garbage(api, total) -> None:
    r = api.get("/v1/fee/quote", params={"total": total})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_total"


def test_admin_limits_flags_sweeps_and_ownership(api) -> None:
    adm = _as(OWNER, admin=True)
    assert api.post("/v1/admin/max-recipients", json={"max_recipients": 2}, headers=adm).status_code == 200
    r = api.post(
        "/v1/settle/native",
        json={"recipients": [addr(1), addr(2), addr(3)], "amounts": [1, 1, 1], "value": 4},
        headers=_as(PAYER),
    )
    assert r.json()["error"]["reason"] == "too_many_recipients"

    r = api.post("/v1/admin/max-recipients", json={"max_recipients": 100_000}, headers=adm)
    assert r.status_code == 400
    assert r.json()["error"]["kind"] == "config"

    assert api.post("/v1/admin/fee-on-transfer", json={"token": "USDX", "flag": True}, headers=adm).status_code == 200
    assert api.engine.governance.is_fee_on_transfer("USDX")

    api.engine.world.credit_native(api.engine.address, 77)
    r = api.post("/v1/admin/sweep/native", json={"to": addr(0x5AFE)}, headers=adm)
    assert r.json()["receipt"]["amount"] == "77"
    api.engine.world.token("USDX").mint(api.engine.address, 5)
    r = api.post("/v1/admin/sweep/token", json={"token": "USDX", "to": addr(0x5AFE)}, headers=adm)
    assert r.json()["receipt"]["amount"] == "5"

    r = api.post("/v1/admin/ownership", json={"new_owner": addr(0x0E)}, headers=adm)
    assert r.status_code == 200
    assert api.post("/v1/admin/pause", headers=adm).status_code == 403


def test_events_feed(api) -> None:
    api.post(
        "/v1/settle/native",
        json={"recipients": [addr(1)], "amounts": [1], "value": 2},
        headers=_as(PAYER),
    )
    api.post("/v1/admin/pause", headers=_as(OWNER, admin=True))

    items = api.get("/v1/events").json()["items"]
    assert [e["name"] for e in items] == ["BatchSettled", "Paused"]
    items = api.get("/v1/events", params={"after": 0}).json()["items"]
    assert [e["name"] for e in items] == ["Paused"]


def test_metrics(api) -> None:
    api.post(
        "/v1/settle/native",
        json={"recipients": [addr(1)], "amounts": [1], "value": 2},
        headers=_as(PAYER),
    )
    api.post("/v1/settle/native", json={"recipients": [], "amounts": [], "value": 0}, headers=_as(PAYER))
    text = api.get("/v1/metrics").text
    assert "batchsettle_settle_atomic_ok 1" in text
    assert "batchsettle_settle_rejected 1" in text


def test_metrics_disabled_by_default(monkeypatch) -> None:
    monkeypatch.delenv("BATCHSETTLE_METRICS_ENABLED", raising=False)
    c = TestClient(create_app(boot_runtime=False))
    assert c.get("/v1/metrics").status_code == 404
    assert c.get("/v1/health").json()["engine"] is False


def test_request_size_limit_returns_413(monkeypatch) -> None:
    monkeypatch.setenv("BATCHSETTLE_MAX_REQUEST_BYTES", "128")
    monkeypatch.delenv("BATCHSETTLE_SIZE_LIMIT_DISABLE", raising=False)
    c = TestClient(create_app(boot_runtime=False))

    payload = {"recipients": [addr(i) for i in range(10)], "amounts": [1] * 10, "value": 11}
    r = c.post("/v1/settle/native", json=payload, headers=_as(PAYER))
    assert r.status_code == 413
    assert r.json()["error"]["code"] == "request_too_large"


@pytest.mark.parametrize("amount", ["²", "١٢", "1.5", "-3"])
def test_non_ascii_or_non_integer_amount_strings_are_rejected(api, amount) -> None:
    r = api.post(
        "/v1/settle/native",
        json={"recipients": [addr(1)], "amounts": [amount], "value": 2},
        headers=_as(PAYER),
    )
    assert r.status_code == 422
    assert api.engine.events.events == []
