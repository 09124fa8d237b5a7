"""SQLite-backed content store for local use."""

from __future__ import annotations

from freshet_lite.storage.sqlite_store import SQLiteStore

__all__ = ["SQLiteStore"]
