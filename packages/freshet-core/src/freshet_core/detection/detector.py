"""Weighted structural change detection between two snapshots."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from freshet_core.detection.models import ChangeDetection, Snapshot

DEFAULT_FIELD_WEIGHTS: dict[str, float] = {
    "title": 0.40,
    "description": 0.30,
    "url": 0.30,
    "content": 0.25,
    "image": 0.20,
    "tags": 0.15,
    "author": 0.10,
    "publishedDate": 0.05,
}
DEFAULT_WEIGHT = 0.05

# Cheap, frequently mutating fields that never justify regeneration alone
DEFAULT_INSIGNIFICANT_FIELDS = frozenset({
    "lastModified",
    "lastAccessed",
    "views",
    "likes",
    "shares",
    "timestamp",
    "fetchedAt",
})

DEFAULT_SIGNIFICANCE_THRESHOLD = 0.10


def values_equal(a: object, b: object) -> bool:
    """Recursive structural equality.

    Lists compare element-wise in order, mappings by key set and value.
    Booleans never equal numbers, unlike Python's ``True == 1``.
    """
    if a is b:
        return True
    if a is None or b is None:
        return False
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if set(a.keys()) != set(b.keys()):
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    if type(a) is not type(b):
        return False
    return a == b


class ChangeDetector:
    """Diffs snapshots field by field and scores the result with per-field weights."""

    def __init__(
        self,
        field_weights: Mapping[str, float] | None = None,
        default_weight: float = DEFAULT_WEIGHT,
        insignificant_fields: Iterable[str] | None = None,
        significance_threshold: float = DEFAULT_SIGNIFICANCE_THRESHOLD,
    ) -> None:
        self.field_weights = dict(DEFAULT_FIELD_WEIGHTS if field_weights is None else field_weights)
        self.default_weight = default_weight
        self.insignificant_fields = frozenset(
            DEFAULT_INSIGNIFICANT_FIELDS if insignificant_fields is None else insignificant_fields
        )
        self.significance_threshold = significance_threshold

    def detect(self, old: Snapshot | None, new: Snapshot | None) -> ChangeDetection:
        if old is None and new is None:
            return ChangeDetection()

        if old is None or new is None:
            present = new if new is not None else old
            return ChangeDetection(
                has_changes=True,
                changed_fields=list(present.keys()),
                change_score=1.0,
            )

        # Union of keys, old order first, then keys only the new side has
        keys = list(dict.fromkeys([*old.keys(), *new.keys()]))
        changed = [k for k in keys if not values_equal(old.get(k), new.get(k))]
        return ChangeDetection(
            has_changes=bool(changed),
            changed_fields=changed,
            change_score=self.change_score(changed),
        )

    def change_score(self, changed_fields: Iterable[str]) -> float:
        total = sum(self.field_weights.get(f, self.default_weight) for f in changed_fields)
        return min(1.0, total)

    def is_significant(self, detection: ChangeDetection) -> bool:
        if not detection.has_changes:
            return False
        if all(f in self.insignificant_fields for f in detection.changed_fields):
            return False
        return detection.change_score >= self.significance_threshold


def change_summary(metadata: ChangeDetection, images: ChangeDetection) -> str:
    """Human-readable summary such as ``"Metadata: title, description; Images: primary"``."""
    parts: list[str] = []
    if metadata.has_changes:
        parts.append(f"Metadata: {', '.join(metadata.changed_fields)}")
    if images.has_changes:
        parts.append(f"Images: {', '.join(images.changed_fields)}")
    return "; ".join(parts) if parts else "No changes detected"
