from pydantic import BaseModel, Field, model_validator
from typing import Literal

from freshet_core.detection.detector import (
    DEFAULT_FIELD_WEIGHTS,
    DEFAULT_INSIGNIFICANT_FIELDS,
    DEFAULT_SIGNIFICANCE_THRESHOLD,
    DEFAULT_WEIGHT,
)
from freshet_core.freshness.models import FreshnessPolicy


def _builtin_policies() -> dict[str, FreshnessPolicy]:
    return {
        "default": FreshnessPolicy(
            name="default",
            description="Default policy for all items",
            max_age_hours=168, stale_threshold_hours=720, check_frequency_hours=24,
        ),
        "high_priority": FreshnessPolicy(
            name="high_priority",
            description="Featured or promoted items",
            max_age_hours=72, stale_threshold_hours=336, check_frequency_hours=12,
        ),
        "low_priority": FreshnessPolicy(
            name="low_priority",
            description="Old or low-engagement items",
            max_age_hours=336, stale_threshold_hours=2160, check_frequency_hours=72,
            auto_regenerate=False,
        ),
        "ai_generated": FreshnessPolicy(
            name="ai_generated",
            description="AI-generated content with frequent updates",
            max_age_hours=48, stale_threshold_hours=168, check_frequency_hours=6,
        ),
        "manual_only": FreshnessPolicy(
            name="manual_only",
            description="Manual refresh only",
            max_age_hours=8760, stale_threshold_hours=17520, check_frequency_hours=8760,
            auto_regenerate=False,
        ),
    }


class FreshnessConfig(BaseModel):
    default_policy: str = "default"
    policies: dict[str, FreshnessPolicy] = Field(default_factory=_builtin_policies)
    stale_score: float = Field(default=50.0, ge=0, le=100)
    critical_score: float = Field(default=30.0, ge=0, le=100)
    check_score: float = Field(default=70.0, ge=0, le=100)
    fresh_score: float = Field(default=70.0, ge=0, le=100)
    archive_after_hours: float = Field(default=720, gt=0)
    batch_size: int = Field(default=50, gt=0)

    @model_validator(mode="before")
    @classmethod
    def name_policies(cls, data: object) -> object:
        # Allow YAML policies keyed by name without repeating the name inside
        if isinstance(data, dict) and isinstance(data.get("policies"), dict):
            data = dict(data)
            data["policies"] = {
                name: ({"name": name, **entry} if isinstance(entry, dict) else entry)
                for name, entry in data["policies"].items()
            }
        return data


class DetectionConfig(BaseModel):
    field_weights: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_FIELD_WEIGHTS))
    default_weight: float = Field(default=DEFAULT_WEIGHT, ge=0)
    insignificant_fields: list[str] = Field(
        default_factory=lambda: sorted(DEFAULT_INSIGNIFICANT_FIELDS)
    )
    significance_threshold: float = Field(default=DEFAULT_SIGNIFICANCE_THRESHOLD, ge=0, le=1)


class RegenerationConfig(BaseModel):
    concurrency: int = Field(default=5, gt=0)
    update_rewritten_content: bool = True
    worker_id: str = "freshet-worker"


class SourceConfig(BaseModel):
    timeout: float = Field(default=15.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, gt=0)
    max_delay: float = Field(default=30.0, gt=0)
    total_timeout: float | None = Field(default=None, gt=0)
    user_agent: str = "freshet/0.1 (+metadata refresh)"
    max_images: int = Field(default=10, ge=0)

    def fetch_budget(self) -> float:
        """Wall-clock limit for one fetch across every retry attempt and backoff wait."""
        if self.total_timeout is not None:
            return self.total_timeout
        waits = sum(
            min(self.max_delay, self.retry_delay * 2**attempt) for attempt in range(self.max_attempts - 1)
        )
        return self.timeout * self.max_attempts + waits


class StoreConfig(BaseModel):
    db_path: str = ".freshet/freshet.db"


class PluginsConfig(BaseModel):
    store: str | None = None
    source: str | None = None


class FreshetConfig(BaseModel):
    freshness: FreshnessConfig = Field(default_factory=FreshnessConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    regeneration: RegenerationConfig = Field(default_factory=RegenerationConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["text", "json"] = "text"
