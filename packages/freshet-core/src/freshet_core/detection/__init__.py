"""Change detection: structural diffing and significance gating."""

from freshet_core.detection.detector import (
    DEFAULT_FIELD_WEIGHTS,
    DEFAULT_INSIGNIFICANT_FIELDS,
    ChangeDetector,
    change_summary,
    values_equal,
)
from freshet_core.detection.models import ChangeDetection, Snapshot, SnapshotValue

__all__ = [
    "DEFAULT_FIELD_WEIGHTS",
    "DEFAULT_INSIGNIFICANT_FIELDS",
    "ChangeDetection",
    "ChangeDetector",
    "Snapshot",
    "SnapshotValue",
    "change_summary",
    "values_equal",
]
