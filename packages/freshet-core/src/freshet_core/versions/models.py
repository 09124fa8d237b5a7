"""Version snapshot and refresh history models. Both are append-only."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TriggerReason(str, Enum):
    manual = "manual"
    batch = "batch"
    regeneration_request = "regeneration_request"


class ContentVersion(BaseModel):
    """Immutable snapshot of an item's content at one version.

    Version 1 is the implicit baseline an item starts tracking with; stored
    snapshots therefore begin at 2.
    """

    model_config = ConfigDict(frozen=True)

    item_id: str = Field(min_length=1)
    version_number: int = Field(ge=1)
    content_hash: str
    previous_content_hash: str | None = None
    rewritten_hash: str | None = None
    images_hash: str
    changes_detected: dict[str, list[str]] = Field(default_factory=dict)
    change_summary: str = ""
    change_score: float = Field(default=0.0, ge=0.0, le=1.0)
    content_snapshot: dict[str, Any] | None = None
    rewritten_snapshot: dict[str, Any] | None = None
    images_snapshot: dict[str, Any] | None = None
    detection_method: str = "structural_diff"
    processing_duration_ms: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RefreshHistoryRecord(BaseModel):
    """One regeneration attempt, recorded after the fact and never mutated."""

    model_config = ConfigDict(frozen=True)

    item_id: str = Field(min_length=1)
    refresh_type: str = "metadata"
    trigger_reason: TriggerReason = TriggerReason.regeneration_request
    success: bool
    changes_found: bool = False
    content_updated: bool = False
    changes_detected: dict[str, list[str]] = Field(default_factory=dict)
    old_content_hash: str | None = None
    new_content_hash: str | None = None
    processing_duration_ms: int = 0
    error_message: str | None = None
    started_at: datetime
    completed_at: datetime


class RollbackResult(BaseModel):
    success: bool
    item_id: str
    rolled_back_to_version: int


class RegenerationStats(BaseModel):
    total_regenerations: int = 0
    successful_regenerations: int = 0
    failed_regenerations: int = 0
    changes_detected: int = 0
    average_processing_time_ms: int = 0
    success_rate: int = 0
    change_detection_rate: int = 0
