"""Freshness tracking: staleness scoring, policy lookup, and per-item state."""

from freshet_core.freshness.models import (
    ArchiveResult,
    FreshnessCheck,
    FreshnessPolicy,
    FreshnessRecord,
    FreshnessRunReport,
    FreshnessStatistics,
    PriorityLevel,
)
from freshet_core.freshness.scoring import priority_staleness_score, score_record, staleness_score
from freshet_core.freshness.tracker import FreshnessTracker, PolicyRegistry, needs_update

__all__ = [
    "ArchiveResult",
    "FreshnessCheck",
    "FreshnessPolicy",
    "FreshnessRecord",
    "FreshnessRunReport",
    "FreshnessStatistics",
    "FreshnessTracker",
    "PolicyRegistry",
    "PriorityLevel",
    "needs_update",
    "priority_staleness_score",
    "score_record",
    "staleness_score",
]
