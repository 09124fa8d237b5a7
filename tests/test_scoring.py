"""Tests for staleness scoring."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from freshet_core.freshness.models import FreshnessPolicy, FreshnessRecord, PriorityLevel
from freshet_core.freshness.scoring import (
    clamp_score,
    hours_since,
    priority_staleness_score,
    score_record,
    staleness_score,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def _policy(**overrides) -> FreshnessPolicy:
    defaults = dict(name="test", max_age_hours=24, stale_threshold_hours=168, check_frequency_hours=24)
    defaults.update(overrides)
    return FreshnessPolicy(**defaults)


def _ago(hours: float) -> datetime:
    return NOW - timedelta(hours=hours)


# ---------------------------------------------------------------------------
# Policy-driven score
# ---------------------------------------------------------------------------


class TestStalenessScore:
    def test_fresh_item_scores_100(self):
        score = staleness_score(_ago(1), _ago(1), 200, _policy(), NOW)
        assert score == 100.0

    def test_never_checked_never_updated(self):
        assert staleness_score(None, None, None, _policy(), NOW) == 35.0

    def test_checked_30h_ago_never_updated_scores_70(self):
        # 6h past max_age starts one 24h block (-5) plus never updated (-25).
        # Counting only full days would give 75; no rounding lands below 70.
        score = staleness_score(_ago(30), None, 200, _policy(max_age_hours=24), NOW)
        assert score == 70.0

    def test_check_penalty_grows_per_started_day(self):
        one_day = staleness_score(_ago(24 + 1), _ago(1), None, _policy(), NOW)
        three_days = staleness_score(_ago(24 + 49), _ago(1), None, _policy(), NOW)
        assert one_day == 95.0
        assert three_days == 85.0

    def test_check_penalty_capped_at_50(self):
        score = staleness_score(_ago(24 * 100), _ago(1), None, _policy(), NOW)
        assert score == 50.0

    def test_update_penalty_only_after_twice_max_age(self):
        within = staleness_score(_ago(1), _ago(47), None, _policy(), NOW)
        beyond = staleness_score(_ago(1), _ago(49), None, _policy(), NOW)
        assert within == 100.0
        assert beyond == 97.0

    def test_update_penalty_capped_at_30(self):
        score = staleness_score(_ago(1), _ago(24 * 200), None, _policy(), NOW)
        assert score == 70.0

    @pytest.mark.parametrize(
        ("status", "expected"),
        [(200, 100.0), (301, 90.0), (399, 90.0), (404, 60.0), (503, 60.0)],
    )
    def test_status_code_penalties(self, status, expected):
        assert staleness_score(_ago(1), _ago(1), status, _policy(), NOW) == expected

    def test_score_never_negative(self):
        score = staleness_score(_ago(24 * 100), _ago(24 * 200), 500, _policy(), NOW)
        assert score == 0.0

    def test_max_age_zero_scores_100(self):
        score = staleness_score(None, None, 500, _policy(max_age_hours=0), NOW)
        assert score == 100.0

    def test_monotonic_in_elapsed_time(self):
        policy = _policy()
        checked, updated = _ago(0), _ago(0)
        scores = [
            staleness_score(checked, updated, 200, policy, NOW + timedelta(hours=h))
            for h in range(0, 24 * 30, 7)
        ]
        assert all(a >= b for a, b in zip(scores, scores[1:]))

    def test_naive_timestamps_read_as_utc(self):
        naive = _ago(30).replace(tzinfo=None)
        assert staleness_score(naive, None, None, _policy(), NOW) == 70.0

    def test_score_record_uses_record_fields(self):
        record = FreshnessRecord(item_id="a", last_checked=_ago(30), status_code=200)
        assert score_record(record, _policy(), NOW) == 70.0


class TestHelpers:
    def test_clamp_score(self):
        assert clamp_score(-5) == 0.0
        assert clamp_score(150) == 100.0
        assert clamp_score(42.5) == 42.5

    def test_hours_since(self):
        assert hours_since(_ago(36), NOW) == pytest.approx(36.0)


# ---------------------------------------------------------------------------
# Priority-multiplier form
# ---------------------------------------------------------------------------


class TestPriorityStalenessScore:
    def test_grows_with_elapsed_time(self):
        assert priority_staleness_score(12, 24) == 50.0
        assert priority_staleness_score(24, 24) == 100.0

    def test_saturates_at_100(self):
        assert priority_staleness_score(240, 24) == 100.0
        assert priority_staleness_score(20, 24, PriorityLevel.critical) == 100.0

    def test_priority_multipliers(self):
        assert priority_staleness_score(12, 24, PriorityLevel.low) == pytest.approx(40.0)
        assert priority_staleness_score(12, 24, PriorityLevel.high) == pytest.approx(60.0)

    def test_zero_threshold(self):
        assert priority_staleness_score(1, 0) == 100.0
