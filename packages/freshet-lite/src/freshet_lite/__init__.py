"""Freshet Lite: local SQLite store, HTTP metadata source, and CLI for Freshet."""

from __future__ import annotations

from freshet_lite.storage.sqlite_store import SQLiteStore

__all__ = ["HttpMetadataSource", "SQLiteStore"]


def __getattr__(name: str):
    if name == "HttpMetadataSource":
        from freshet_lite.sources.http_source import HttpMetadataSource

        return HttpMetadataSource
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
