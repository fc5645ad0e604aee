from __future__ import annotations

import pytest

from batchsettle.ledger.constants import UINT256_MAX, ZERO_ADDRESS
from batchsettle.runtime.apply.plan import plan_batch
from batchsettle.runtime.errors import AmountArithmeticError, ValidationError
from conftest import OWNER, PAYER, addr


def _reason(excinfo) -> str:
    return excinfo.value.reason


def test_plan_quotes_fee_and_total() -> None:
    plan = plan_batch([addr(1), addr(2)], [600, 400], max_recipients=10, fee_bps=10)
    assert plan.total == 1_000
    assert plan.fee == 1
    assert plan.required == 1_001
    assert plan.count == 2


@pytest.mark.parametrize(
    "recipients,amounts,reason",
    [
        ([], [], "empty_batch"),
        ([addr(1)], [], "length_mismatch"),
        ([addr(1), addr(2)], [1], "length_mismatch"),
        (["0x1234"], [1], "bad_recipient"),
        ([ZERO_ADDRESS], [1], "bad_recipient"),
        (["not-an-address"], [1], "bad_recipient"),
        ([addr(1)], [-1], "negative_amount"),
        ([addr(1)], [True], "bad_amount"),
        ([addr(1)], [1.5], "bad_amount"),
    ],
)
def test_plan_rejections(recipients, amounts, reason) -> None:
    with pytest.raises(ValidationError) as ei:
        plan_batch(recipients, amounts, max_recipients=10, fee_bps=10)
    assert _reason(ei) == reason


def test_cap_is_inclusive() -> None:
    rs = [addr(i + 1) for i in range(400)]
    plan = plan_batch(rs, [1] * 400, max_recipients=400, fee_bps=0)
    assert plan.count == 400

    with pytest.raises(ValidationError) as ei:
        plan_batch(rs + [addr(999)], [1] * 401, max_recipients=400, fee_bps=0)
    assert _reason(ei) == "too_many_recipients"


def test_sum_overflow_is_arithmetic_error() -> None:
    with pytest.raises(AmountArithmeticError):
        plan_batch([addr(1), addr(2)], [UINT256_MAX, 1], max_recipients=10, fee_bps=0)


def test_total_plus_fee_overflow_is_arithmetic_error() -> None:
    with pytest.raises(AmountArithmeticError):
        plan_batch([addr(1)], [UINT256_MAX], max_recipients=10, fee_bps=10)


def test_401_recipients_rejected_before_any_funds_move(world, engine) -> None:
    """maxRecipients=400, batch of 401 -> ValidationError, payer untouched."""
    engine.set_max_recipients(OWNER, 400)
    token = world.deploy_token("USDX")
    token.mint(PAYER, 10**9)
    token.set_allowance(PAYER, engine.address, 10**9)
    world.credit_native(PAYER, 10**9)

    rs = [addr(i + 1) for i in range(401)]
    with pytest.raises(ValidationError):
        engine.settle_token(PAYER, "USDX", rs, [1] * 401)
    with pytest.raises(ValidationError):
        engine.settle_token_best_effort(PAYER, "USDX", rs, [1] * 401)
    with pytest.raises(ValidationError):
        engine.settle_native(PAYER, rs, [1] * 401, value=402)

    assert token.balance_of(PAYER) == 10**9
    assert token.allowance(PAYER, engine.address) == 10**9
    assert world.native_balance(PAYER) == 10**9


def test_unknown_token_is_validation_error(engine) -> None:
    with pytest.raises(ValidationError) as ei:
        engine.settle_token(PAYER, "NOPE", [addr(1)], [1])
    assert _reason(ei) == "unknown_token"
