"""Tests for single-item regeneration through the engine."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from freshet_core.config.models import FreshetConfig, SourceConfig
from freshet_core.engine import EngineDependencies, FreshnessEngine
from freshet_core.errors import SourceFetchError
from freshet_core.regeneration.models import RegenerationOptions
from freshet_core.sources.base import ContentRewriter, MetadataSource
from freshet_core.sources.retrying import RetryingSource
from freshet_core.versions.hashing import content_hash


class _SlowFirstSource(MetadataSource):
    """Times out on the first metadata call, then answers."""

    def __init__(self, metadata: dict, images: dict) -> None:
        self.metadata = metadata
        self.images = images
        self.metadata_calls = 0

    async def fetch_metadata(self, url: str) -> dict:
        self.metadata_calls += 1
        if self.metadata_calls == 1:
            await asyncio.sleep(0.2)
            raise SourceFetchError(url, "timeout", "no response within 0.2s")
        return dict(self.metadata)

    async def fetch_images(self, url: str) -> dict:
        return dict(self.images)


async def _track(engine, sample_metadata, sample_images, item_id="item-1"):
    await engine.track_item(
        item_id, "https://example.com/widgets", content=dict(sample_metadata), images=dict(sample_images)
    )


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_no_changes_keeps_version(self, engine, store, sample_metadata, sample_images, clock):
        await _track(engine, sample_metadata, sample_images)
        result = await engine.regenerate("item-1")

        assert result.success
        assert not result.changes_detected
        assert result.version_number is None
        assert await engine.list_versions("item-1") == []
        assert await engine.versions.list_history("item-1") == []

        record = await engine.check_freshness("item-1")
        assert record.last_checked == clock()
        assert record.status_code == 200
        assert record.last_updated is None

    @pytest.mark.asyncio
    async def test_significant_change_creates_version(
        self, engine, store, mock_source, sample_metadata, sample_images, clock
    ):
        await _track(engine, sample_metadata, sample_images)
        fresh = {**sample_metadata, "title": "Widget API v2"}
        mock_source.fetch_metadata.return_value = fresh

        result = await engine.regenerate("item-1")

        assert result.success
        assert result.changes_detected
        assert result.significant_changes
        assert result.metadata_changes == ["title"]
        assert result.image_changes == []
        assert result.change_score == pytest.approx(0.40)
        assert result.version_number == 2

        item = await store.get_item("item-1")
        assert item.content == fresh
        assert item.rewritten_content == fresh
        assert item.current_version == 2

        [version] = await engine.list_versions("item-1")
        assert version.version_number == 2
        assert version.content_hash == content_hash(fresh)
        assert version.previous_content_hash == content_hash(sample_metadata)
        assert version.change_summary == "Metadata: title"
        assert version.changes_detected == {"metadata": ["title"], "images": []}

        [history] = await engine.versions.list_history("item-1")
        assert history.success
        assert history.changes_found
        assert history.content_updated

        record = await engine.check_freshness("item-1")
        assert record.last_updated == clock()
        assert record.score == 100.0

    @pytest.mark.asyncio
    async def test_insignificant_change_keeps_rewritten_content(
        self, engine, store, mock_source, sample_metadata, sample_images
    ):
        await _track(engine, sample_metadata, sample_images)
        mock_source.fetch_metadata.return_value = {**sample_metadata, "views": 999}

        result = await engine.regenerate("item-1")

        assert result.changes_detected
        assert not result.significant_changes
        item = await store.get_item("item-1")
        assert item.content["views"] == 999
        assert item.rewritten_content["views"] == 120
        [history] = await engine.versions.list_history("item-1")
        assert not history.content_updated

    @pytest.mark.asyncio
    async def test_successive_changes_number_versions_from_two(
        self, engine, mock_source, sample_metadata, sample_images
    ):
        await _track(engine, sample_metadata, sample_images)
        for n in range(3):
            mock_source.fetch_metadata.return_value = {**sample_metadata, "title": f"title {n}"}
            await engine.regenerate("item-1")
        assert [v.version_number for v in await engine.list_versions("item-1")] == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_unknown_item_fails_without_history(self, engine):
        result = await engine.regenerate("missing")
        assert not result.success
        assert result.error_type == "NotFoundError"
        assert await engine.versions.list_history() == []

    @pytest.mark.asyncio
    async def test_fetch_failure_is_returned_and_recorded(
        self, engine, store, mock_source, sample_metadata, sample_images
    ):
        await _track(engine, sample_metadata, sample_images)
        mock_source.fetch_metadata.side_effect = SourceFetchError(
            "https://example.com/widgets", "http", "HTTP 404", status_code=404
        )

        result = await engine.regenerate("item-1")

        assert not result.success
        assert result.error_type == "SourceFetchError"
        item = await store.get_item("item-1")
        assert item.content == sample_metadata
        assert await engine.list_versions("item-1") == []

        [history] = await engine.versions.list_history("item-1")
        assert not history.success
        assert "HTTP 404" in history.error_message

        record = await engine.check_freshness("item-1")
        assert record.status_code == 404

    @pytest.mark.asyncio
    async def test_fetch_timeout(self, store, mock_source, sample_metadata, sample_images, clock):
        async def _hang(url):
            await asyncio.sleep(5)

        mock_source.fetch_images = AsyncMock(side_effect=_hang)
        config = FreshetConfig(source=SourceConfig(timeout=0.05, total_timeout=0.05))
        engine = FreshnessEngine(EngineDependencies(store=store, source=mock_source, config=config, clock=clock))
        await _track(engine, sample_metadata, sample_images)

        result = await engine.regenerate("item-1")

        assert not result.success
        assert result.error_type == "SourceFetchError"
        assert "timeout" in result.error

    @pytest.mark.asyncio
    async def test_slow_first_attempt_is_retried_within_budget(
        self, store, sample_metadata, sample_images, clock
    ):
        inner = _SlowFirstSource({**sample_metadata, "title": "fresh"}, sample_images)
        source_config = SourceConfig(timeout=0.2, max_attempts=3, retry_delay=0.01, max_delay=0.05)
        source = RetryingSource(
            inner,
            max_attempts=source_config.max_attempts,
            retry_delay=source_config.retry_delay,
            max_delay=source_config.max_delay,
        )
        engine = FreshnessEngine(
            EngineDependencies(
                store=store, source=source, config=FreshetConfig(source=source_config), clock=clock
            )
        )
        await _track(engine, sample_metadata, sample_images)

        result = await engine.regenerate("item-1")

        assert result.success, result.error
        assert inner.metadata_calls == 2
        assert result.version_number == 2

    @pytest.mark.asyncio
    async def test_failed_fetch_cancels_the_other_fetch(self, engine, mock_source, sample_metadata, sample_images):
        cancelled = asyncio.Event()

        async def _slow_images(url):
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        mock_source.fetch_metadata = AsyncMock(
            side_effect=SourceFetchError("https://example.com/widgets", "parse", "no metadata")
        )
        mock_source.fetch_images = AsyncMock(side_effect=_slow_images)
        await _track(engine, sample_metadata, sample_images)

        result = await engine.regenerate("item-1")

        assert not result.success
        assert result.error_type == "SourceFetchError"
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_rewriter_derives_rewritten_content(
        self, store, mock_source, sample_metadata, sample_images, clock
    ):
        rewriter = AsyncMock(spec=ContentRewriter)
        rewriter.rewrite = AsyncMock(return_value={"summary": "rewritten"})
        engine = FreshnessEngine(
            EngineDependencies(store=store, source=mock_source, rewriter=rewriter, clock=clock)
        )
        await _track(engine, sample_metadata, sample_images)
        mock_source.fetch_metadata.return_value = {**sample_metadata, "description": "new"}

        await engine.regenerate("item-1")

        item = await store.get_item("item-1")
        assert item.rewritten_content == {"summary": "rewritten"}
        [version] = await engine.list_versions("item-1")
        assert version.rewritten_snapshot == {"summary": "rewritten"}

    @pytest.mark.asyncio
    async def test_update_rewritten_content_disabled(
        self, engine, store, mock_source, sample_metadata, sample_images
    ):
        await _track(engine, sample_metadata, sample_images)
        mock_source.fetch_metadata.return_value = {**sample_metadata, "title": "new"}

        await engine.regenerate("item-1", RegenerationOptions(update_rewritten_content=False))

        item = await store.get_item("item-1")
        assert item.content["title"] == "new"
        assert item.rewritten_content["title"] == "Widget API"

    @pytest.mark.asyncio
    async def test_first_regeneration_without_baseline(self, engine, store, sample_metadata):
        await engine.track_item("item-1", "https://example.com/widgets")
        result = await engine.regenerate("item-1")
        assert result.changes_detected
        assert result.change_score == 1.0
        assert result.version_number == 2
        assert (await store.get_item("item-1")).content == sample_metadata

    @pytest.mark.asyncio
    async def test_rollback_after_regeneration(
        self, engine, store, mock_source, sample_metadata, sample_images
    ):
        await _track(engine, sample_metadata, sample_images)
        for title in ("second", "third"):
            mock_source.fetch_metadata.return_value = {**sample_metadata, "title": title}
            await engine.regenerate("item-1")

        result = await engine.rollback_submission("item-1", 2)

        assert result.success
        item = await store.get_item("item-1")
        assert item.content["title"] == "second"
        assert item.current_version == 2
