"""Tests for the FreshnessEngine facade wiring."""

from __future__ import annotations

import logging

import pytest

from freshet_core.config.models import FreshetConfig, FreshnessConfig, DetectionConfig
from freshet_core.engine import EngineDependencies, FreshnessEngine
from freshet_core.errors import NotFoundError
from freshet_core.freshness.models import PriorityLevel


class TestWiring:
    def test_components_share_store_and_clock(self, engine, store, clock):
        assert engine.tracker.store is store
        assert engine.queue.store is store
        assert engine.versions.store is store
        assert engine.orchestrator.tracker is engine.tracker
        assert engine.batch.orchestrator is engine.orchestrator
        assert engine.tracker.clock is clock

    def test_config_flows_into_components(self, store, mock_source):
        config = FreshetConfig(
            freshness=FreshnessConfig(stale_score=40, check_score=60, batch_size=7),
            detection=DetectionConfig(significance_threshold=0.5),
        )
        engine = FreshnessEngine(EngineDependencies(store=store, source=mock_source, config=config))
        assert engine.tracker.stale_score == 40
        assert engine.batch.check_score == 60
        assert engine.batch.check_batch_size == 7
        assert engine.detector.significance_threshold == 0.5
        assert engine.orchestrator.fetch_timeout == config.source.fetch_budget()

    def test_injected_logger_is_used(self, store, mock_source):
        log = logging.getLogger("test.engine")
        engine = FreshnessEngine(EngineDependencies(store=store, source=mock_source, log=log))
        assert engine.orchestrator.log is log
        assert engine.queue.log is log


class TestFacade:
    @pytest.mark.asyncio
    async def test_track_item_stores_baseline(self, engine, store, sample_metadata):
        record = await engine.track_item(
            "item-1", "https://example.com", content=sample_metadata, priority=PriorityLevel.critical
        )
        assert record.priority == PriorityLevel.critical
        item = await store.get_item("item-1")
        assert item.current_version == 1
        assert item.content == sample_metadata
        assert item.rewritten_content == sample_metadata

    @pytest.mark.asyncio
    async def test_check_submission_freshness_unknown(self, engine):
        with pytest.raises(NotFoundError):
            await engine.check_submission_freshness("missing")

    @pytest.mark.asyncio
    async def test_get_stale_items_uses_configured_threshold(self, engine):
        await engine.track_item("a", "https://example.com/a")
        stale = await engine.get_stale_items()
        assert [r.item_id for r in stale] == ["a"]

    @pytest.mark.asyncio
    async def test_archive_uses_configured_hours(self, engine):
        result = await engine.archive_stale_items()
        assert result.threshold_hours == 720
        assert result.archived_count == 0

    @pytest.mark.asyncio
    async def test_statistics_and_rescore(self, engine):
        await engine.track_item("a", "https://example.com/a")
        assert await engine.rescore_all() == 1
        stats = await engine.get_freshness_statistics()
        assert stats.total == 1
        assert stats.stale == 1
