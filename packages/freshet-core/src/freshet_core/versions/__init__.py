"""Version history: immutable snapshots, refresh audit log, and rollback."""

from freshet_core.versions.hashing import canonical_json, content_hash
from freshet_core.versions.manager import BASELINE_VERSION, VersionManager
from freshet_core.versions.models import (
    ContentVersion,
    RefreshHistoryRecord,
    RegenerationStats,
    RollbackResult,
    TriggerReason,
)

__all__ = [
    "BASELINE_VERSION",
    "ContentVersion",
    "RefreshHistoryRecord",
    "RegenerationStats",
    "RollbackResult",
    "TriggerReason",
    "VersionManager",
    "canonical_json",
    "content_hash",
]
