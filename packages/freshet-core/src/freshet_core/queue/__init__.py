"""Refresh queue: scheduling and exclusive-claim status transitions."""

from freshet_core.queue.models import QueueStatus, RefreshQueueItem, RefreshType
from freshet_core.queue.refresh_queue import RefreshQueue, parse_refresh_type, priority_for_score

__all__ = [
    "QueueStatus",
    "RefreshQueue",
    "RefreshQueueItem",
    "RefreshType",
    "parse_refresh_type",
    "priority_for_score",
]
