"""Pydantic models for freshness tracking."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PriorityLevel(str, Enum):
    """How much an item matters when it goes stale."""

    low = "low"
    normal = "normal"
    high = "high"
    critical = "critical"


class FreshnessPolicy(BaseModel):
    """Named thresholds used for one scoring pass. Immutable once read."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    max_age_hours: float = Field(default=168, ge=0)
    stale_threshold_hours: float = Field(default=720, ge=0)
    check_frequency_hours: float = Field(default=24, ge=0)
    auto_regenerate: bool = True


class FreshnessRecord(BaseModel):
    """Per-item freshness state, owned by the FreshnessTracker."""

    item_id: str = Field(min_length=1)
    last_checked: datetime | None = None
    last_updated: datetime | None = None
    score: float = 100.0
    is_stale: bool = False
    priority: PriorityLevel = PriorityLevel.normal
    policy: str | None = None
    status_code: int | None = None
    archived_at: datetime | None = None

    @field_validator("score")
    @classmethod
    def clamp_score(cls, v: float) -> float:
        return max(0.0, min(100.0, v))

    @property
    def archived(self) -> bool:
        return self.archived_at is not None


class FreshnessCheck(BaseModel):
    """Outcome of computing and persisting one item's score."""

    item_id: str
    previous_score: float
    new_score: float
    needs_update: bool
    is_stale: bool
    checked_at: datetime

    @property
    def display_score(self) -> float:
        return round(self.new_score, 2)


class FreshnessRunReport(BaseModel):
    """Totals from one run_freshness_check pass."""

    checked: int = 0
    scheduled: int = 0
    errors: int = 0
    started_at: datetime
    finished_at: datetime | None = None


class FreshnessStatistics(BaseModel):
    total: int = 0
    fresh: int = 0
    stale: int = 0
    average_score: float = 0.0
    fresh_percentage: int = 0
    stale_percentage: int = 0


class ArchiveResult(BaseModel):
    archived_count: int
    threshold_hours: float
    archived_at: datetime
