"""Freshet Core - content freshness scoring, change detection, and versioned regeneration."""

from freshet_core.config import FreshetConfig, load_config
from freshet_core.detection import ChangeDetector
from freshet_core.engine import EngineDependencies, FreshnessEngine
from freshet_core.errors import (
    FreshetError,
    NotFoundError,
    SourceFetchError,
    StoreError,
    ValidationError,
)
from freshet_core.freshness import FreshnessTracker, PolicyRegistry
from freshet_core.queue import RefreshQueue
from freshet_core.regeneration import BatchProcessor, RegenerationOrchestrator
from freshet_core.versions import VersionManager

__version__ = "0.1.0"

__all__ = [
    "BatchProcessor",
    "ChangeDetector",
    "EngineDependencies",
    "FreshetConfig",
    "FreshetError",
    "FreshnessEngine",
    "FreshnessTracker",
    "NotFoundError",
    "PolicyRegistry",
    "RefreshQueue",
    "RegenerationOrchestrator",
    "SourceFetchError",
    "StoreError",
    "ValidationError",
    "VersionManager",
    "load_config",
]
