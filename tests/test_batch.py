"""Tests for batch regeneration, the freshness check run, and queue draining."""

from __future__ import annotations

from datetime import timedelta

import pytest

from freshet_core.errors import SourceFetchError
from freshet_core.freshness.models import FreshnessRecord
from freshet_core.queue.models import QueueStatus
from freshet_core.regeneration.batch import chunked


class TestChunked:
    def test_splits_evenly_and_remainder(self):
        assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert chunked([], 3) == []

    def test_rejects_zero(self):
        with pytest.raises(ValueError):
            chunked([1], 0)


# ---------------------------------------------------------------------------
# batch_regenerate
# ---------------------------------------------------------------------------


class TestBatchRegenerate:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(self, engine, mock_source, sample_metadata):
        ids = [f"item-{i}" for i in range(10)]
        for item_id in ids:
            await engine.track_item(item_id, f"https://example.com/{item_id}", content=dict(sample_metadata))

        async def _fetch(url):
            if url.endswith("item-3"):
                raise SourceFetchError(url, "network", "connection reset")
            return {**sample_metadata, "title": f"fresh {url}"}

        mock_source.fetch_metadata.side_effect = _fetch

        result = await engine.batch_regenerate(ids, concurrency=3)

        assert result.total_processed == 10
        assert result.successful == 9
        assert result.failed == 1
        assert result.changes_detected == 9
        assert [e.item_id for e in result.errors] == ["item-3"]
        assert [r.item_id for r in result.results] == ids

    @pytest.mark.asyncio
    async def test_progress_callback_per_chunk(self, engine, sample_metadata):
        ids = [f"item-{i}" for i in range(5)]
        for item_id in ids:
            await engine.track_item(item_id, "https://example.com", content=dict(sample_metadata))
        seen = []

        result = await engine.batch_regenerate(ids, concurrency=2, progress_callback=seen.append)

        assert [p.processed for p in seen] == [2, 4, 5]
        assert all(p.total == 5 for p in seen)
        assert result.successful == 5

    @pytest.mark.asyncio
    async def test_progress_callback_errors_are_contained(self, engine, sample_metadata):
        await engine.track_item("item-1", "https://example.com", content=dict(sample_metadata))

        def _broken(progress):
            raise RuntimeError("ui gone")

        result = await engine.batch_regenerate(["item-1"], progress_callback=_broken)
        assert result.successful == 1

    @pytest.mark.asyncio
    async def test_duplicate_ids_regenerate_one_after_another(self, engine, mock_source, sample_metadata):
        await engine.track_item("a", "https://example.com/a", content=dict(sample_metadata))
        mock_source.fetch_metadata.return_value = {**sample_metadata, "title": "fresh"}

        result = await engine.batch_regenerate(["a", "a"], concurrency=2)

        assert result.successful == 2
        assert result.failed == 0
        assert [r.version_number for r in result.results] == [2, None]
        assert result.results[1].changes_detected is False
        assert [v.version_number for v in await engine.list_versions("a")] == [2]
        item = await engine.store.get_item("a")
        assert item.current_version == 2
        assert item.content["title"] == "fresh"

    @pytest.mark.asyncio
    async def test_empty_batch(self, engine):
        result = await engine.batch_regenerate([])
        assert result.total_processed == 0
        assert result.results == []


# ---------------------------------------------------------------------------
# run_freshness_check
# ---------------------------------------------------------------------------


class TestRunFreshnessCheck:
    @pytest.mark.asyncio
    async def test_schedules_items_needing_update(self, engine, store, clock):
        await engine.track_item("never-checked", "https://example.com/a")
        await store.save_freshness(
            FreshnessRecord(item_id="fresh", last_checked=clock(), last_updated=clock(), score=100.0)
        )

        report = await engine.run_freshness_check()

        assert report.checked == 1
        assert report.scheduled == 1
        assert report.errors == 0
        [entry] = await engine.queue.claim()
        assert entry.item_id == "never-checked"
        # Score 35 falls in the 20-40 bucket
        assert entry.priority == 3
        assert entry.metadata["reason"] == "freshness_check"

    @pytest.mark.asyncio
    async def test_policy_without_auto_regenerate_is_not_scheduled(self, engine):
        await engine.track_item("manual", "https://example.com/m", policy="manual_only")

        report = await engine.run_freshness_check()

        assert report.checked == 1
        assert report.scheduled == 0
        assert await engine.queue.claim() == []

    @pytest.mark.asyncio
    async def test_repeated_runs_do_not_duplicate_queue_entries(self, engine, clock):
        await engine.track_item("a", "https://example.com/a")
        first = await engine.run_freshness_check()
        clock.advance(days=9)
        second = await engine.run_freshness_check()
        assert first.scheduled == second.scheduled == 1
        assert len(await engine.queue.claim()) == 1

    @pytest.mark.asyncio
    async def test_rescore_pulls_aging_items_in(self, engine, store, clock):
        await store.save_freshness(
            FreshnessRecord(item_id="aging", last_checked=clock(), last_updated=clock(), score=100.0)
        )
        clock.advance(days=20)

        report = await engine.run_freshness_check()

        assert report.checked == 1
        assert report.scheduled == 1


# ---------------------------------------------------------------------------
# process_queue
# ---------------------------------------------------------------------------


class TestProcessQueue:
    @pytest.mark.asyncio
    async def test_drains_and_settles_entries(self, engine, mock_source, sample_metadata):
        await engine.track_item("ok", "https://example.com/ok", content=dict(sample_metadata))
        await engine.track_item("bad", "https://example.com/bad", content=dict(sample_metadata))
        ok = await engine.schedule_refresh("ok")
        bad = await engine.schedule_refresh("bad")

        async def _fetch(url):
            if url.endswith("bad"):
                raise SourceFetchError(url, "parse", "no metadata")
            return {**sample_metadata, "title": "fresh"}

        mock_source.fetch_metadata.side_effect = _fetch

        report = await engine.process_queue(limit=10, worker_id="w-1")

        assert report.claimed == 2
        assert report.completed == 1
        assert report.failed == 1
        assert report.lost_claims == 0
        done = await engine.queue.get(ok.id)
        assert done.status == QueueStatus.completed
        assert done.worker_id == "w-1"
        failed = await engine.queue.get(bad.id)
        assert failed.status == QueueStatus.failed
        assert failed.error_details == {"error_type": "SourceFetchError"}

    @pytest.mark.asyncio
    async def test_two_refresh_types_for_one_item(self, engine, mock_source, sample_metadata):
        await engine.track_item("a", "https://example.com/a", content=dict(sample_metadata))
        metadata = await engine.schedule_refresh("a", "metadata")
        full = await engine.schedule_refresh("a", "full")
        mock_source.fetch_metadata.return_value = {**sample_metadata, "title": "fresh"}

        report = await engine.process_queue(limit=10)

        assert report.claimed == 2
        assert report.completed == 2
        assert report.failed == 0
        assert (await engine.queue.get(metadata.id)).status == QueueStatus.completed
        assert (await engine.queue.get(full.id)).status == QueueStatus.completed
        assert [v.version_number for v in await engine.list_versions("a")] == [2]
        assert (await engine.store.get_item("a")).current_version == 2

    @pytest.mark.asyncio
    async def test_lost_claims_are_skipped(self, engine, sample_metadata):
        await engine.track_item("a", "https://example.com/a", content=dict(sample_metadata))
        entry = await engine.schedule_refresh("a")
        await engine.queue.mark_processing(entry.id, "other-worker")

        report = await engine.process_queue()

        # Processing entries are not pending, so nothing is claimed
        assert report.claimed == 0
        assert (await engine.queue.get(entry.id)).worker_id == "other-worker"

    @pytest.mark.asyncio
    async def test_claim_race_counts_lost_claim(self, engine, sample_metadata, monkeypatch):
        await engine.track_item("a", "https://example.com/a", content=dict(sample_metadata))
        entry = await engine.schedule_refresh("a")
        original_claim = engine.queue.claim

        async def _claim_then_steal(limit=10):
            pending = await original_claim(limit)
            await engine.queue.mark_processing(entry.id, "faster-worker")
            return pending

        monkeypatch.setattr(engine.queue, "claim", _claim_then_steal)

        report = await engine.process_queue()

        assert report.lost_claims == 1
        assert report.claimed == 0
        assert (await engine.queue.get(entry.id)).worker_id == "faster-worker"

    @pytest.mark.asyncio
    async def test_default_worker_id_from_config(self, engine, sample_metadata):
        await engine.track_item("a", "https://example.com/a", content=dict(sample_metadata))
        entry = await engine.schedule_refresh("a")
        await engine.process_queue()
        assert (await engine.queue.get(entry.id)).worker_id == "freshet-worker"


def test_clock_advance_helper(clock):
    start = clock()
    assert clock.advance(hours=1) == start + timedelta(hours=1)
