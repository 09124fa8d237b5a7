"""Shared test fixtures for Freshet."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from freshet_core.config.models import FreshetConfig
from freshet_core.engine import EngineDependencies, FreshnessEngine
from freshet_core.sources.base import MetadataSource
from freshet_lite.storage.sqlite_store import SQLiteStore

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock; call it like ``utcnow``."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    s = SQLiteStore(db_path=str(tmp_path / "freshet.db"))
    yield s
    s.close()


@pytest.fixture
def sample_metadata() -> dict:
    return {
        "title": "Widget API",
        "description": "REST API for widget management",
        "url": "https://example.com/widgets",
        "tags": ["api", "widgets"],
        "views": 120,
    }


@pytest.fixture
def sample_images() -> dict:
    return {
        "primary": "https://example.com/og.png",
        "favicon": "https://example.com/favicon.ico",
        "gallery": [],
    }


@pytest.fixture
def mock_source(sample_metadata, sample_images):
    source = MagicMock(spec=MetadataSource)
    source.fetch_metadata = AsyncMock(return_value=dict(sample_metadata))
    source.fetch_images = AsyncMock(return_value=dict(sample_images))
    return source


@pytest.fixture
def sample_config() -> FreshetConfig:
    return FreshetConfig()


@pytest.fixture
def engine(store, mock_source, sample_config, clock) -> FreshnessEngine:
    return FreshnessEngine(
        EngineDependencies(store=store, source=mock_source, config=sample_config, clock=clock)
    )


@pytest.fixture(autouse=True)
def _reset_freshet_logging():
    """Undo handlers installed by configure_logging (the CLI calls it per command)."""
    yield
    for name in ("freshet_core", "freshet_lite"):
        log = logging.getLogger(name)
        log.handlers.clear()
        log.setLevel(logging.NOTSET)
        log.propagate = True
