"""Bounded-concurrency drivers over the orchestrator."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, TypeVar

from freshet_core.clock import Clock, utcnow
from freshet_core.errors import ClaimConflictError, FreshetError
from freshet_core.freshness.models import FreshnessRunReport
from freshet_core.queue.models import RefreshQueueItem, RefreshType
from freshet_core.queue.refresh_queue import priority_for_score
from freshet_core.regeneration.models import (
    BatchError,
    BatchProgress,
    BatchResult,
    QueueDrainReport,
    RegenerationOptions,
    RegenerationResult,
)
from freshet_core.versions.models import TriggerReason

if TYPE_CHECKING:
    from freshet_core.freshness.models import FreshnessRecord
    from freshet_core.freshness.tracker import FreshnessTracker
    from freshet_core.queue.refresh_queue import RefreshQueue
    from freshet_core.regeneration.orchestrator import RegenerationOrchestrator

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[BatchProgress], None]


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    """Split *items* into consecutive chunks of at most *size*."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchProcessor:
    """Runs many regenerations, one chunk of ``concurrency`` items at a time.

    Each chunk is awaited fully before the next starts. That is bounded
    fan-out rather than a rolling semaphore, which keeps progress reporting
    simple at a small throughput cost on fetch-bound work.
    """

    def __init__(
        self,
        orchestrator: RegenerationOrchestrator,
        tracker: FreshnessTracker,
        queue: RefreshQueue,
        concurrency: int = 5,
        check_score: float = 70.0,
        check_batch_size: int = 50,
        clock: Clock = utcnow,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.tracker = tracker
        self.queue = queue
        self.concurrency = concurrency
        self.check_score = check_score
        self.check_batch_size = check_batch_size
        self.clock = clock
        self.log = log or logger

    async def _regenerate_one(self, item_id: str, options: RegenerationOptions) -> RegenerationResult:
        try:
            return await self.orchestrator.regenerate(item_id, options)
        except Exception as exc:
            self.log.exception("Batch regeneration item failed", extra={"item_id": item_id})
            return RegenerationResult(
                item_id=item_id, success=False, error=str(exc), error_type=type(exc).__name__
            )

    async def batch_regenerate(
        self,
        item_ids: Sequence[str],
        concurrency: int | None = None,
        progress_callback: ProgressCallback | None = None,
        options: RegenerationOptions | None = None,
    ) -> BatchResult:
        """Regenerate every item and summarize. Never raises for a single item's failure."""
        started = time.monotonic()
        result = BatchResult()
        if not item_ids:
            return result

        size = concurrency or self.concurrency
        options = options or RegenerationOptions(trigger_reason=TriggerReason.batch)
        self.log.info("Starting batch regeneration", extra={"total": len(item_ids), "concurrency": size})

        for chunk in chunked(list(item_ids), size):
            outcomes = await asyncio.gather(*(self._regenerate_one(i, options) for i in chunk))
            for outcome in outcomes:
                result.results.append(outcome)
                if outcome.success:
                    result.successful += 1
                    result.changes_detected += int(outcome.changes_detected)
                    result.significant_changes += int(outcome.significant_changes)
                else:
                    result.failed += 1
                    result.errors.append(
                        BatchError(item_id=outcome.item_id, error=outcome.error or "unknown error")
                    )
            result.total_processed += len(chunk)

            if progress_callback is not None:
                progress = BatchProgress(
                    processed=result.total_processed,
                    total=len(item_ids),
                    successful=result.successful,
                    failed=result.failed,
                    changes_detected=result.changes_detected,
                )
                try:
                    progress_callback(progress)
                except Exception:
                    self.log.exception("Progress callback failed")

        result.processing_time_ms = int((time.monotonic() - started) * 1000)
        self.log.info(
            "Batch regeneration completed",
            extra={
                "total_processed": result.total_processed,
                "successful": result.successful,
                "failed": result.failed,
                "processing_time_ms": result.processing_time_ms,
            },
        )
        return result

    async def run_freshness_check(self, batch_size: int | None = None, rescore: bool = True) -> FreshnessRunReport:
        """Check the stalest items and schedule refreshes for those that need one.

        Checking and regenerating stay decoupled: this only enqueues work.
        """
        report = FreshnessRunReport(started_at=self.clock())
        if rescore:
            await self.tracker.rescore_all()
        records = await self.tracker.get_stale_items(self.check_score, batch_size or self.check_batch_size)

        for chunk in chunked(records, self.concurrency):
            outcomes = await asyncio.gather(*(self._check_one(r) for r in chunk))
            for checked, scheduled in outcomes:
                report.checked += int(checked)
                report.scheduled += int(scheduled)
                report.errors += int(not checked)

        report.finished_at = self.clock()
        self.log.info(
            "Freshness check completed",
            extra={"checked": report.checked, "scheduled": report.scheduled, "errors": report.errors},
        )
        return report

    async def _check_one(self, record: FreshnessRecord) -> tuple[bool, bool]:
        try:
            check = await self.tracker.compute_and_persist(record.item_id)
            if not check.needs_update:
                return True, False
            if not self.tracker.policies.get(record.policy).auto_regenerate:
                return True, False
            await self.queue.schedule(
                record.item_id,
                RefreshType.metadata,
                priority_for_score(check.new_score),
                {"reason": "freshness_check", "score": round(check.new_score, 2)},
            )
            return True, True
        except Exception as exc:
            self.log.error(
                "Freshness check failed", extra={"item_id": record.item_id, "error": str(exc)}
            )
            return False, False

    async def process_queue(self, limit: int = 10, worker_id: str = "freshet-worker") -> QueueDrainReport:
        """Claim pending refreshes, regenerate them in chunks, and settle their status."""
        report = QueueDrainReport()
        claimed: list[RefreshQueueItem] = []
        for entry in await self.queue.claim(limit):
            try:
                claimed.append(await self.queue.mark_processing(entry.id, worker_id))
            except ClaimConflictError:
                report.lost_claims += 1
                self.log.info("Lost queue claim", extra={"queue_id": entry.id, "worker_id": worker_id})
        report.claimed = len(claimed)

        for chunk in chunked(claimed, self.concurrency):
            outcomes = await asyncio.gather(*(self._process_entry(e) for e in chunk))
            for entry, outcome in zip(chunk, outcomes):
                if outcome.success:
                    report.completed += 1
                else:
                    report.failed += 1
                    report.errors.append(
                        BatchError(item_id=entry.item_id, error=outcome.error or "unknown error")
                    )
        return report

    async def _process_entry(self, entry: RefreshQueueItem) -> RegenerationResult:
        outcome = await self._regenerate_one(
            entry.item_id,
            RegenerationOptions(refresh_type=entry.refresh_type, trigger_reason=TriggerReason.batch),
        )
        try:
            if outcome.success:
                await self.queue.mark_completed(entry.id)
            else:
                await self.queue.mark_failed(
                    entry.id,
                    outcome.error or "unknown error",
                    {"error_type": outcome.error_type},
                )
        except FreshetError as exc:
            self.log.error(
                "Could not settle queue item", extra={"queue_id": entry.id, "error": str(exc)}
            )
        return outcome
