"""Staleness scoring.

Scores run from 100 (fully fresh) down to 0 (maximally stale). The
policy-driven multi-penalty form below is the one the tracker uses; the
priority-multiplier form is kept as a separate function for callers that
only know elapsed hours and never blend the two.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from freshet_core.freshness.models import FreshnessPolicy, FreshnessRecord, PriorityLevel

NEVER_CHECKED_PENALTY = 40.0
NEVER_UPDATED_PENALTY = 25.0

CHECK_PENALTY_PER_DAY = 5.0
CHECK_PENALTY_CAP = 50.0
UPDATE_PENALTY_PER_DAY = 3.0
UPDATE_PENALTY_CAP = 30.0

ERROR_STATUS_PENALTY = 40.0
REDIRECT_STATUS_PENALTY = 10.0

PRIORITY_MULTIPLIERS: dict[PriorityLevel, float] = {
    PriorityLevel.low: 0.8,
    PriorityLevel.normal: 1.0,
    PriorityLevel.high: 1.2,
    PriorityLevel.critical: 1.5,
}


def clamp_score(score: float) -> float:
    return max(0.0, min(100.0, score))


def hours_since(ts: datetime, now: datetime) -> float:
    """Elapsed hours between *ts* and *now*; naive timestamps are read as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return (now - ts).total_seconds() / 3600


def _overrun_penalty(excess_hours: float, per_day: float, cap: float) -> float:
    # Every started 24h block past the limit costs per_day points
    if excess_hours <= 0:
        return 0.0
    return min(cap, math.ceil(excess_hours / 24) * per_day)


def staleness_score(
    last_checked: datetime | None,
    last_updated: datetime | None,
    status_code: int | None,
    policy: FreshnessPolicy,
    now: datetime | None = None,
) -> float:
    """Compute an unrounded score in [0, 100] from check age, update age, and source health.

    A policy with ``max_age_hours == 0`` scores exactly 100.
    """
    if policy.max_age_hours == 0:
        return 100.0
    now = now or datetime.now(UTC)
    score = 100.0

    if last_checked is None:
        score -= NEVER_CHECKED_PENALTY
    else:
        excess = hours_since(last_checked, now) - policy.max_age_hours
        score -= _overrun_penalty(excess, CHECK_PENALTY_PER_DAY, CHECK_PENALTY_CAP)

    if last_updated is None:
        score -= NEVER_UPDATED_PENALTY
    else:
        excess = hours_since(last_updated, now) - policy.max_age_hours * 2
        score -= _overrun_penalty(excess, UPDATE_PENALTY_PER_DAY, UPDATE_PENALTY_CAP)

    if status_code is not None:
        if status_code >= 400:
            score -= ERROR_STATUS_PENALTY
        elif status_code >= 300:
            score -= REDIRECT_STATUS_PENALTY

    return clamp_score(score)


def score_record(
    record: FreshnessRecord,
    policy: FreshnessPolicy,
    now: datetime | None = None,
) -> float:
    return staleness_score(
        record.last_checked, record.last_updated, record.status_code, policy, now
    )


def priority_staleness_score(
    hours_elapsed: float,
    threshold_hours: float,
    priority: PriorityLevel = PriorityLevel.normal,
) -> float:
    """Single-parameter form: grows with elapsed time, saturating at 100.

    Note the inverted reading compared to ``staleness_score``: here a
    higher number means *more* stale.
    """
    if threshold_hours <= 0:
        return 100.0
    base = min(100.0, max(0.0, hours_elapsed) / threshold_hours * 100)
    return min(100.0, base * PRIORITY_MULTIPLIERS[priority])
