"""Regeneration: per-item orchestration and bounded batch processing."""

from freshet_core.regeneration.batch import BatchProcessor, chunked
from freshet_core.regeneration.models import (
    BatchError,
    BatchProgress,
    BatchResult,
    QueueDrainReport,
    RegenerationOptions,
    RegenerationResult,
)
from freshet_core.regeneration.orchestrator import RegenerationOrchestrator

__all__ = [
    "BatchError",
    "BatchProcessor",
    "BatchProgress",
    "BatchResult",
    "QueueDrainReport",
    "RegenerationOptions",
    "RegenerationOrchestrator",
    "RegenerationResult",
    "chunked",
]
