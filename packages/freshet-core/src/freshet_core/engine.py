"""Engine facade: wires the components from explicitly injected collaborators."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from freshet_core.clock import Clock, utcnow
from freshet_core.config.models import FreshetConfig
from freshet_core.detection.detector import ChangeDetector
from freshet_core.freshness.models import (
    ArchiveResult,
    FreshnessCheck,
    FreshnessRecord,
    FreshnessRunReport,
    FreshnessStatistics,
    PriorityLevel,
)
from freshet_core.freshness.tracker import FreshnessTracker, PolicyRegistry
from freshet_core.interfaces.store import ContentItem, ContentStore
from freshet_core.queue.models import RefreshQueueItem, RefreshType
from freshet_core.queue.refresh_queue import RefreshQueue
from freshet_core.regeneration.batch import BatchProcessor, ProgressCallback
from freshet_core.regeneration.models import (
    BatchResult,
    QueueDrainReport,
    RegenerationOptions,
    RegenerationResult,
)
from freshet_core.regeneration.orchestrator import RegenerationOrchestrator
from freshet_core.sources.base import ContentRewriter, MetadataSource
from freshet_core.versions.manager import VersionManager
from freshet_core.versions.models import ContentVersion, RegenerationStats, RollbackResult

logger = logging.getLogger(__name__)


@dataclass
class EngineDependencies:
    """Everything the engine needs, passed in rather than read from the environment."""

    store: ContentStore
    source: MetadataSource
    config: FreshetConfig = field(default_factory=FreshetConfig)
    rewriter: ContentRewriter | None = None
    log: logging.Logger | logging.LoggerAdapter | None = None
    clock: Clock = utcnow


class FreshnessEngine:
    """Entry points for cron-style callers, the CLI, and other subsystems."""

    def __init__(self, deps: EngineDependencies) -> None:
        cfg = deps.config
        log = deps.log or logger
        self.config = cfg
        self.store = deps.store
        self.clock = deps.clock
        self.log = log

        self.detector = ChangeDetector(
            field_weights=cfg.detection.field_weights,
            default_weight=cfg.detection.default_weight,
            insignificant_fields=cfg.detection.insignificant_fields,
            significance_threshold=cfg.detection.significance_threshold,
        )
        self.policies = PolicyRegistry.from_config(cfg.freshness)
        self.tracker = FreshnessTracker(
            deps.store,
            self.policies,
            stale_score=cfg.freshness.stale_score,
            critical_score=cfg.freshness.critical_score,
            clock=deps.clock,
            log=log,
        )
        self.queue = RefreshQueue(deps.store, clock=deps.clock, log=log)
        self.versions = VersionManager(deps.store, clock=deps.clock, log=log)
        self.orchestrator = RegenerationOrchestrator(
            deps.store,
            deps.source,
            self.detector,
            self.tracker,
            self.versions,
            rewriter=deps.rewriter,
            fetch_timeout=cfg.source.fetch_budget(),
            clock=deps.clock,
            log=log,
        )
        self.batch = BatchProcessor(
            self.orchestrator,
            self.tracker,
            self.queue,
            concurrency=cfg.regeneration.concurrency,
            check_score=cfg.freshness.check_score,
            check_batch_size=cfg.freshness.batch_size,
            clock=deps.clock,
            log=log,
        )

    # -- tracking ----------------------------------------------------------

    async def track_item(
        self,
        item_id: str,
        url: str,
        content: dict[str, Any] | None = None,
        images: dict[str, Any] | None = None,
        priority: PriorityLevel = PriorityLevel.normal,
        policy: str | None = None,
    ) -> FreshnessRecord:
        """Start tracking an item. Its stored content becomes the version 1 baseline."""
        now = self.clock()
        await self.store.save_item(
            ContentItem(
                item_id=item_id,
                url=url,
                content=content,
                rewritten_content=dict(content) if content is not None else None,
                images=images,
                created_at=now,
                updated_at=now,
            )
        )
        return await self.tracker.start_tracking(item_id, priority, policy)

    async def check_freshness(self, item_id: str) -> FreshnessRecord:
        return await self.tracker.check_freshness(item_id)

    async def check_submission_freshness(self, item_id: str) -> FreshnessCheck:
        return await self.tracker.compute_and_persist(item_id)

    async def get_stale_items(self, threshold_score: float | None = None, limit: int = 100) -> list[FreshnessRecord]:
        threshold = self.config.freshness.stale_score if threshold_score is None else threshold_score
        return await self.tracker.get_stale_items(threshold, limit)

    async def rescore_all(self) -> int:
        return await self.tracker.rescore_all()

    async def archive_stale_items(self, threshold_hours: float | None = None) -> ArchiveResult:
        hours = self.config.freshness.archive_after_hours if threshold_hours is None else threshold_hours
        return await self.tracker.archive_stale(hours)

    async def get_freshness_statistics(self) -> FreshnessStatistics:
        return await self.tracker.statistics(self.config.freshness.fresh_score)

    # -- scheduling --------------------------------------------------------

    async def schedule_refresh(
        self,
        item_id: str,
        refresh_type: str | RefreshType = RefreshType.metadata,
        priority: int = 5,
        metadata: dict[str, Any] | None = None,
    ) -> RefreshQueueItem:
        return await self.queue.schedule(item_id, refresh_type, priority, metadata)

    async def run_freshness_check(self, batch_size: int | None = None, rescore: bool = True) -> FreshnessRunReport:
        return await self.batch.run_freshness_check(batch_size, rescore)

    async def process_queue(self, limit: int = 10, worker_id: str | None = None) -> QueueDrainReport:
        return await self.batch.process_queue(limit, worker_id or self.config.regeneration.worker_id)

    # -- regeneration ------------------------------------------------------

    async def regenerate(self, item_id: str, options: RegenerationOptions | None = None) -> RegenerationResult:
        if options is None:
            options = RegenerationOptions(
                update_rewritten_content=self.config.regeneration.update_rewritten_content
            )
        return await self.orchestrator.regenerate(item_id, options)

    async def batch_regenerate(
        self,
        item_ids: Sequence[str],
        concurrency: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BatchResult:
        return await self.batch.batch_regenerate(item_ids, concurrency, progress_callback)

    # -- versions ----------------------------------------------------------

    async def rollback_submission(self, item_id: str, target_version: int) -> RollbackResult:
        return await self.versions.rollback(item_id, target_version)

    async def list_versions(self, item_id: str) -> list[ContentVersion]:
        return await self.versions.list_versions(item_id)

    async def regeneration_stats(
        self,
        start: datetime,
        end: datetime,
        refresh_type: str | None = None,
    ) -> RegenerationStats:
        return await self.versions.regeneration_stats(start, end, refresh_type)
