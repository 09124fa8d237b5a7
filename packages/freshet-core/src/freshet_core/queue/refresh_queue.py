"""Durable refresh queue over a QueueStore."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from freshet_core.clock import Clock, utcnow
from freshet_core.errors import (
    ClaimConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from freshet_core.queue.models import OPEN_STATUSES, QueueStatus, RefreshQueueItem, RefreshType

if TYPE_CHECKING:
    from freshet_core.interfaces.store import QueueStore

logger = logging.getLogger(__name__)


def priority_for_score(score: float) -> int:
    """Bucket a freshness score into a queue priority (1 is serviced first)."""
    if score < 20:
        return 1
    if score < 40:
        return 3
    if score < 60:
        return 5
    if score < 80:
        return 7
    return 9


def parse_refresh_type(value: str | RefreshType) -> RefreshType:
    try:
        return RefreshType(value)
    except ValueError:
        valid = ", ".join(t.value for t in RefreshType)
        raise ValidationError(f"Invalid refresh type: {value}. Valid types: {valid}") from None


class RefreshQueue:
    """Schedules refresh work and owns every queue status transition.

    Claiming is two steps: ``claim`` only lists pending entries, and
    ``mark_processing`` flips one with a single conditional update, so a
    worker that dies between the two leaves an inspectable pending entry.
    """

    def __init__(
        self,
        store: QueueStore,
        clock: Clock = utcnow,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.log = log or logger

    async def schedule(
        self,
        item_id: str,
        refresh_type: str | RefreshType = RefreshType.metadata,
        priority: int = 5,
        metadata: dict[str, Any] | None = None,
    ) -> RefreshQueueItem:
        """Enqueue a pending entry, or return the open one already queued for this item."""
        rtype = parse_refresh_type(refresh_type)
        if not 1 <= priority <= 10:
            raise ValidationError(f"Priority must be between 1 and 10, got {priority}")

        for existing in await self.store.list_queue_items(item_id=item_id):
            if existing.status in OPEN_STATUSES and existing.refresh_type == rtype:
                self.log.debug(
                    "Refresh already queued",
                    extra={"item_id": item_id, "queue_id": existing.id},
                )
                return existing

        entry = RefreshQueueItem(
            item_id=item_id,
            refresh_type=rtype,
            priority=priority,
            scheduled_at=self.clock(),
            metadata=metadata or {},
        )
        await self.store.insert_queue_item(entry)
        self.log.info(
            "Refresh scheduled",
            extra={"item_id": item_id, "queue_id": entry.id, "priority": priority},
        )
        return entry

    async def claim(self, limit: int = 10) -> list[RefreshQueueItem]:
        """Pending entries, oldest scheduled first. Does not change their status."""
        return await self.store.list_queue_items(status=QueueStatus.pending, limit=limit)

    async def get(self, queue_id: str) -> RefreshQueueItem:
        entry = await self.store.get_queue_item(queue_id)
        if entry is None:
            raise NotFoundError("queue item", queue_id)
        return entry

    async def mark_processing(self, queue_id: str, worker_id: str) -> RefreshQueueItem:
        """Take exclusive hold of a pending entry. Raises ClaimConflictError if it was lost."""
        claimed = await self.store.transition_queue_item(
            queue_id,
            QueueStatus.pending,
            QueueStatus.processing,
            {"worker_id": worker_id, "started_at": self.clock()},
        )
        if not claimed:
            await self.get(queue_id)
            raise ClaimConflictError(queue_id)
        return await self.get(queue_id)

    async def mark_completed(self, queue_id: str) -> None:
        await self._finish(queue_id, QueueStatus.completed, {"completed_at": self.clock()})

    async def mark_failed(
        self,
        queue_id: str,
        error_message: str,
        error_details: dict[str, Any] | None = None,
    ) -> None:
        await self._finish(
            queue_id,
            QueueStatus.failed,
            {
                "completed_at": self.clock(),
                "error_message": error_message,
                "error_details": error_details,
            },
        )

    async def _finish(self, queue_id: str, target: QueueStatus, fields: dict[str, Any]) -> None:
        moved = await self.store.transition_queue_item(
            queue_id, QueueStatus.processing, target, fields
        )
        if not moved:
            current = await self.get(queue_id)
            raise InvalidTransitionError(queue_id, current.status.value, target.value)

    async def stats(self) -> dict[str, int]:
        """Count entries grouped by status."""
        counts = {s.value: 0 for s in QueueStatus}
        for entry in await self.store.list_queue_items():
            counts[entry.status.value] += 1
        return counts
