"""Snapshot typing and change-detection results."""

from __future__ import annotations

from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field

# Loosely structured third-party content: str/number/bool/None leaves,
# nested mappings, and lists of the same.
SnapshotValue = Union[str, int, float, bool, None, list[Any], dict[str, Any]]
Snapshot = Mapping[str, SnapshotValue]


class ChangeDetection(BaseModel):
    """Structured diff between two snapshots."""

    model_config = ConfigDict(frozen=True)

    has_changes: bool = False
    changed_fields: list[str] = Field(default_factory=list)
    change_score: float = Field(default=0.0, ge=0.0, le=1.0)
