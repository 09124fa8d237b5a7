"""Single-item regeneration: fetch, diff, version, persist, record."""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from freshet_core.clock import Clock, utcnow
from freshet_core.detection.detector import ChangeDetector, change_summary
from freshet_core.errors import FreshetError, NotFoundError, SourceFetchError
from freshet_core.regeneration.models import RegenerationOptions, RegenerationResult
from freshet_core.versions.hashing import content_hash
from freshet_core.versions.models import ContentVersion, RefreshHistoryRecord

if TYPE_CHECKING:
    from freshet_core.freshness.tracker import FreshnessTracker
    from freshet_core.interfaces.store import ContentStore
    from freshet_core.sources.base import ContentRewriter, MetadataSource
    from freshet_core.versions.manager import VersionManager

logger = logging.getLogger(__name__)

# Status recorded after a successful fetch; sources raise for anything else
OK_STATUS = 200


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class RegenerationOrchestrator:
    """Regenerates one item at a time.

    Steps run strictly in order (fetch, detect, version, persist, history)
    because each needs the previous result. Any failure is caught here and
    returned as ``success=False`` so one item can never abort a batch.
    """

    def __init__(
        self,
        store: ContentStore,
        source: MetadataSource,
        detector: ChangeDetector,
        tracker: FreshnessTracker,
        versions: VersionManager,
        rewriter: ContentRewriter | None = None,
        fetch_timeout: float = 15.0,
        clock: Clock = utcnow,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.store = store
        self.source = source
        self.detector = detector
        self.tracker = tracker
        self.versions = versions
        self.rewriter = rewriter
        self.fetch_timeout = fetch_timeout
        self.clock = clock
        self.log = log or logger
        self._item_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, item_id: str) -> asyncio.Lock:
        lock = self._item_locks.get(item_id)
        if lock is None:
            lock = asyncio.Lock()
            self._item_locks[item_id] = lock
        return lock

    async def regenerate(
        self,
        item_id: str,
        options: RegenerationOptions | None = None,
    ) -> RegenerationResult:
        options = options or RegenerationOptions()
        # Runs for the same item queue up behind each other
        async with self._lock_for(item_id):
            return await self._regenerate_locked(item_id, options)

    async def _regenerate_locked(
        self,
        item_id: str,
        options: RegenerationOptions,
    ) -> RegenerationResult:
        started_at = self.clock()
        started = time.monotonic()
        self.log.info("Starting regeneration", extra={"item_id": item_id})

        try:
            result = await self._regenerate(item_id, options, started_at, started)
        except Exception as exc:
            elapsed = _elapsed_ms(started)
            context = {"item_id": item_id, "error": str(exc), "processing_time_ms": elapsed}
            if isinstance(exc, FreshetError):
                self.log.error("Regeneration failed", extra=context)
            else:
                self.log.exception("Regeneration failed unexpectedly", extra=context)
            if not isinstance(exc, NotFoundError):
                await self._record_failure(item_id, options, exc, started_at, elapsed)
            return RegenerationResult(
                item_id=item_id,
                success=False,
                processing_time_ms=elapsed,
                error=str(exc),
                error_type=type(exc).__name__,
            )

        self.log.info(
            "Regeneration completed",
            extra={
                "item_id": item_id,
                "changes_detected": result.changes_detected,
                "processing_time_ms": result.processing_time_ms,
            },
        )
        return result

    async def _regenerate(
        self,
        item_id: str,
        options: RegenerationOptions,
        started_at: datetime,
        started: float,
    ) -> RegenerationResult:
        item = await self.store.get_item(item_id)
        if item is None:
            raise NotFoundError("item", item_id)

        try:
            new_content, new_images = await self._fetch_both(item.url)
        except SourceFetchError as exc:
            if exc.status_code is not None:
                await self._note_check(item_id, exc.status_code, content_updated=False)
            raise

        content_changes = self.detector.detect(item.content, new_content)
        image_changes = self.detector.detect(item.images, new_images)
        significant = self.detector.is_significant(content_changes) or self.detector.is_significant(
            image_changes
        )
        changed = content_changes.has_changes or image_changes.has_changes
        change_score = max(content_changes.change_score, image_changes.change_score)

        if not changed:
            await self._note_check(item_id, OK_STATUS, content_updated=False)
            return RegenerationResult(
                item_id=item_id,
                success=True,
                processing_time_ms=_elapsed_ms(started),
            )

        now = self.clock()
        rewritten = item.rewritten_content
        update: dict[str, Any] = {"content": new_content, "images": new_images, "updated_at": now}
        if significant and options.update_rewritten_content:
            rewritten = await self._derive(new_content)
            update["rewritten_content"] = rewritten

        version_number = await self.versions.next_version_number(item_id)
        changes = {
            "metadata": content_changes.changed_fields,
            "images": image_changes.changed_fields,
        }
        elapsed = _elapsed_ms(started)
        # Snapshot first: a rejected version number leaves the item untouched
        await self.versions.create_version_snapshot(
            ContentVersion(
                item_id=item_id,
                version_number=version_number,
                content_hash=content_hash(new_content),
                previous_content_hash=content_hash(item.content),
                rewritten_hash=content_hash(rewritten) if rewritten is not None else None,
                images_hash=content_hash(new_images),
                changes_detected=changes,
                change_summary=change_summary(content_changes, image_changes),
                change_score=change_score,
                content_snapshot=new_content,
                rewritten_snapshot=rewritten,
                images_snapshot=new_images,
                processing_duration_ms=elapsed,
            )
        )
        update["current_version"] = version_number
        await self.store.update_item(item_id, update)
        await self._note_check(item_id, OK_STATUS, content_updated=True)

        await self.versions.record_refresh_history(
            RefreshHistoryRecord(
                item_id=item_id,
                refresh_type=options.refresh_type.value,
                trigger_reason=options.trigger_reason,
                success=True,
                changes_found=True,
                content_updated=significant,
                changes_detected=changes,
                old_content_hash=content_hash(item.content),
                new_content_hash=content_hash(new_content),
                processing_duration_ms=elapsed,
                started_at=started_at,
                completed_at=self.clock(),
            )
        )

        return RegenerationResult(
            item_id=item_id,
            success=True,
            changes_detected=True,
            significant_changes=significant,
            change_score=change_score,
            metadata_changes=content_changes.changed_fields,
            image_changes=image_changes.changed_fields,
            version_number=version_number,
            processing_time_ms=_elapsed_ms(started),
        )

    async def _fetch_both(self, url: str) -> tuple[dict[str, Any], dict[str, Any]]:
        tasks = [
            asyncio.create_task(self._fetch(self.source.fetch_metadata, url)),
            asyncio.create_task(self._fetch(self.source.fetch_images, url)),
        ]
        try:
            content, images = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # Collect the sibling's outcome so its error is never left unretrieved
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return content, images

    async def _fetch(
        self,
        fetch: Callable[[str], Awaitable[dict[str, Any]]],
        url: str,
    ) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(fetch(url), timeout=self.fetch_timeout)
        except TimeoutError:
            raise SourceFetchError(
                url, "timeout", f"no response within {self.fetch_timeout}s"
            ) from None

    async def _derive(self, content: dict[str, Any]) -> dict[str, Any]:
        if self.rewriter is None:
            return dict(content)
        return await self.rewriter.rewrite(content)

    async def _note_check(self, item_id: str, status_code: int, content_updated: bool) -> None:
        try:
            await self.tracker.record_check(item_id, status_code, content_updated)
        except NotFoundError:
            self.log.warning("Item has no freshness record", extra={"item_id": item_id})

    async def _record_failure(
        self,
        item_id: str,
        options: RegenerationOptions,
        exc: Exception,
        started_at: datetime,
        elapsed: int,
    ) -> None:
        try:
            await self.versions.record_refresh_history(
                RefreshHistoryRecord(
                    item_id=item_id,
                    refresh_type=options.refresh_type.value,
                    trigger_reason=options.trigger_reason,
                    success=False,
                    processing_duration_ms=elapsed,
                    error_message=str(exc),
                    started_at=started_at,
                    completed_at=self.clock(),
                )
            )
        except Exception:
            self.log.exception("Could not record failed refresh", extra={"item_id": item_id})
