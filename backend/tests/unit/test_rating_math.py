"""
tests/unit/test_rating_math.py — validate_score and compute_aggregate.

Pure functions, no session. Averages round half-up to 2 places; an empty
rating set has no average (None), never 0.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.services.rating_service import compute_aggregate, validate_score


def D(value: str) -> Decimal:
    return Decimal(value)


# ═══════════════════════════════════════════════════════════════════════════
# validate_score
# ═══════════════════════════════════════════════════════════════════════════

class TestValidateScore:

    @pytest.mark.parametrize(
        "score, expected",
        [
            ("4.5", D("4.5")),
            (3, D("3.0")),
            (0, D("0.0")),
            (5, D("5.0")),
            (2.5, D("2.5")),
            (D("1.50"), D("1.5")),
        ],
    )
    def test_accepts_half_steps(self, score, expected):
        assert validate_score(score) == expected

    @pytest.mark.parametrize(
        "score",
        ["5.5", "-0.5", "4.25", 4.1, "abc", "", None, True, float("nan"), float("inf")],
    )
    def test_rejects(self, score):
        with pytest.raises(AppError) as exc_info:
            validate_score(score)

        err = exc_info.value
        assert err.code == ErrorCode.INVALID_SCORE
        assert err.http_status == 400
        assert err.field == "score"


# ═══════════════════════════════════════════════════════════════════════════
# compute_aggregate
# ═══════════════════════════════════════════════════════════════════════════

class TestComputeAggregate:

    def test_empty_is_unset(self):
        assert compute_aggregate([]) == (None, 0)

    def test_single(self):
        assert compute_aggregate([D("4.5")]) == (D("4.50"), 1)

    def test_mean(self):
        assert compute_aggregate([D("4.5"), D("3.0")]) == (D("3.75"), 2)

    def test_repeating_fraction(self):
        # 5/3 = 1.666...
        assert compute_aggregate([D("1"), D("2"), D("2")]) == (D("1.67"), 3)

    def test_rounds_half_up(self):
        # 1/8 = 0.125 → 0.13 (banker's rounding would give 0.12)
        scores = [D("0.5"), D("0.5")] + [D("0")] * 6
        assert compute_aggregate(scores) == (D("0.13"), 8)

    def test_accepts_a_generator(self):
        average, count = compute_aggregate(D(s) for s in ("5", "4", "0.5"))
        assert average == D("3.17")
        assert count == 3

    def test_always_two_places(self):
        average, _ = compute_aggregate([D("4"), D("4")])
        assert str(average) == "4.00"
