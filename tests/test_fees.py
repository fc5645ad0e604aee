from __future__ import annotations

import pytest

from batchsettle.runtime.fees import quote_fee


def test_zero_total_or_zero_rate_is_free() -> None:
    assert quote_fee(0, 0) == 0
    assert quote_fee(0, 500) == 0
    assert quote_fee(10**30, 0) == 0


@pytest.mark.parametrize(
    "total,bps,expected",
    [
        (1, 1, 1),  # 0.0001 rounds up to one unit
        (9_999, 1, 1),
        (10_000, 1, 1),
        (10_001, 1, 2),
        (4_000_000, 10, 4_000),
        (4_000_001, 10, 4_001),
        (123_456_789, 37, 456_791),
        (10_000, 10_000, 10_000),
    ],
)
def test_exact_ceiling(total: int, bps: int, expected: int) -> None:
    assert quote_fee(total, bps) == expected
    # exact ceiling, cross-checked without the helper
    assert quote_fee(total, bps) == -(-(total * bps) // 10_000)


def test_monotonic_and_never_exceeds_total() -> None:
    for bps in (1, 10, 37, 250, 500, 10_000):
        prev = 0
        for total in range(0, 3_000, 7):
            fee = quote_fee(total, bps)
            assert fee >= prev
            assert fee <= total
            prev = fee


@pytest.mark.parametrize("total,bps", [(-1, 10), (10, -1), (10, 10_001), (True, 10), (10, 1.5), ("10", 10)])
def test_rejects_bad_inputs(total, bps) -> None:
    with pytest.raises(ValueError):
        quote_fee(total, bps)


def test_engine_quote_uses_current_rate(engine) -> None:
    assert engine.quote_fee(4_000_000) == 4_000
    assert engine.quote_fee(0) == 0
