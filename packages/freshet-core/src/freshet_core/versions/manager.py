"""Append-only version snapshots, refresh history, and rollback."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from freshet_core.clock import Clock, utcnow
from freshet_core.errors import IntegrityError, NotFoundError, ValidationError
from freshet_core.versions.models import (
    ContentVersion,
    RefreshHistoryRecord,
    RegenerationStats,
    RollbackResult,
)

if TYPE_CHECKING:
    from freshet_core.interfaces.store import ContentStore

logger = logging.getLogger(__name__)

BASELINE_VERSION = 1


class VersionManager:
    """Sole writer of ContentVersion and RefreshHistoryRecord rows.

    Nothing here updates or deletes a version or history row; rollback
    only rewrites the item's current content.
    """

    def __init__(
        self,
        store: ContentStore,
        clock: Clock = utcnow,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.log = log or logger

    async def next_version_number(self, item_id: str) -> int:
        latest = await self.store.latest_version_number(item_id)
        return max(latest, BASELINE_VERSION) + 1

    async def create_version_snapshot(self, version: ContentVersion) -> None:
        """Append a snapshot. Never overwrites; out-of-order numbers are integrity errors."""
        if version.version_number <= BASELINE_VERSION:
            raise ValidationError("Version 1 is the implicit baseline and cannot be stored")
        latest = await self.store.latest_version_number(version.item_id)
        if version.version_number <= latest:
            raise IntegrityError(
                f"version {version.version_number} for {version.item_id} "
                f"is not after latest version {latest}"
            )
        await self.store.insert_version(version)
        self.log.info(
            "Version snapshot created",
            extra={"item_id": version.item_id, "version": version.version_number},
        )

    async def record_refresh_history(self, record: RefreshHistoryRecord) -> None:
        await self.store.insert_history(record)

    async def list_versions(self, item_id: str) -> list[ContentVersion]:
        return await self.store.list_versions(item_id)

    async def list_history(self, item_id: str | None = None) -> list[RefreshHistoryRecord]:
        return await self.store.list_history(item_id=item_id)

    async def rollback(self, item_id: str, target_version: int) -> RollbackResult:
        """Restore a stored snapshot as the item's current content.

        Later versions stay in place, so a subsequent rollback may move to
        any other stored version.
        """
        self.log.info("Rolling back item", extra={"item_id": item_id, "target_version": target_version})
        if target_version == BASELINE_VERSION:
            raise ValidationError("Cannot rollback to current version")

        version = await self.store.get_version(item_id, target_version)
        if version is None:
            raise NotFoundError("version", f"{item_id}@{target_version}")

        await self.store.update_item(
            item_id,
            {
                "content": version.content_snapshot,
                "rewritten_content": version.rewritten_snapshot,
                "images": version.images_snapshot,
                "current_version": target_version,
                "updated_at": self.clock(),
            },
        )
        self.log.info("Rollback completed", extra={"item_id": item_id, "target_version": target_version})
        return RollbackResult(success=True, item_id=item_id, rolled_back_to_version=target_version)

    async def regeneration_stats(
        self,
        start: datetime,
        end: datetime,
        refresh_type: str | None = None,
    ) -> RegenerationStats:
        """Aggregate refresh history started within [start, end]."""
        records = await self.store.list_history(started_after=start, started_before=end)
        if refresh_type is not None:
            records = [r for r in records if r.refresh_type == refresh_type]
        total = len(records)
        if total == 0:
            return RegenerationStats()
        successful = sum(1 for r in records if r.success)
        changed = sum(1 for r in records if r.changes_found)
        return RegenerationStats(
            total_regenerations=total,
            successful_regenerations=successful,
            failed_regenerations=total - successful,
            changes_detected=changed,
            average_processing_time_ms=round(sum(r.processing_duration_ms for r in records) / total),
            success_rate=round(successful / total * 100),
            change_detection_rate=round(changed / total * 100),
        )
