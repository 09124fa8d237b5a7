"""Pydantic models for regeneration results and batch reports."""

from __future__ import annotations

from pydantic import BaseModel, Field

from freshet_core.queue.models import RefreshType
from freshet_core.versions.models import TriggerReason


class RegenerationOptions(BaseModel):
    refresh_type: RefreshType = RefreshType.metadata
    trigger_reason: TriggerReason = TriggerReason.regeneration_request
    update_rewritten_content: bool = True


class RegenerationResult(BaseModel):
    """Outcome of regenerating one item. Failures are values, not exceptions."""

    item_id: str
    success: bool
    changes_detected: bool = False
    significant_changes: bool = False
    change_score: float = 0.0
    metadata_changes: list[str] = Field(default_factory=list)
    image_changes: list[str] = Field(default_factory=list)
    version_number: int | None = None
    processing_time_ms: int = 0
    error: str | None = None
    error_type: str | None = None


class BatchError(BaseModel):
    item_id: str
    error: str


class BatchProgress(BaseModel):
    processed: int
    total: int
    successful: int
    failed: int
    changes_detected: int


class BatchResult(BaseModel):
    total_processed: int = 0
    successful: int = 0
    failed: int = 0
    changes_detected: int = 0
    significant_changes: int = 0
    errors: list[BatchError] = Field(default_factory=list)
    processing_time_ms: int = 0
    results: list[RegenerationResult] = Field(default_factory=list)


class QueueDrainReport(BaseModel):
    """Totals from one pass over the refresh queue."""

    claimed: int = 0
    lost_claims: int = 0
    completed: int = 0
    failed: int = 0
    errors: list[BatchError] = Field(default_factory=list)
