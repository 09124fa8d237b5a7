"""ContentStore implementation backed by a local SQLite database."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel

from freshet_core.errors import DuplicateVersionError, IntegrityError, StoreError, ValidationError
from freshet_core.freshness.models import FreshnessRecord
from freshet_core.interfaces.store import ContentItem
from freshet_core.queue.models import QueueStatus, RefreshQueueItem
from freshet_core.versions.models import ContentVersion, RefreshHistoryRecord

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS items (
    item_id TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    content TEXT,
    rewritten_content TEXT,
    images TEXT,
    current_version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS freshness (
    item_id TEXT PRIMARY KEY,
    last_checked TEXT,
    last_updated TEXT,
    score REAL NOT NULL,
    is_stale INTEGER NOT NULL DEFAULT 0,
    priority TEXT NOT NULL DEFAULT 'normal',
    policy TEXT,
    status_code INTEGER,
    archived_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_freshness_score ON freshness(score);
CREATE TABLE IF NOT EXISTS refresh_queue (
    id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL,
    refresh_type TEXT NOT NULL,
    priority INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    scheduled_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT,
    worker_id TEXT,
    error_message TEXT,
    error_details TEXT,
    metadata TEXT
);
CREATE INDEX IF NOT EXISTS idx_queue_status ON refresh_queue(status, scheduled_at);
CREATE INDEX IF NOT EXISTS idx_queue_item ON refresh_queue(item_id);
CREATE TABLE IF NOT EXISTS content_versions (
    item_id TEXT NOT NULL,
    version_number INTEGER NOT NULL,
    content_hash TEXT NOT NULL,
    previous_content_hash TEXT,
    rewritten_hash TEXT,
    images_hash TEXT NOT NULL,
    changes_detected TEXT,
    change_summary TEXT,
    change_score REAL NOT NULL DEFAULT 0,
    content_snapshot TEXT,
    rewritten_snapshot TEXT,
    images_snapshot TEXT,
    detection_method TEXT NOT NULL,
    processing_duration_ms INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    PRIMARY KEY (item_id, version_number)
);
CREATE TABLE IF NOT EXISTS refresh_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL,
    refresh_type TEXT NOT NULL,
    trigger_reason TEXT NOT NULL,
    success INTEGER NOT NULL,
    changes_found INTEGER NOT NULL DEFAULT 0,
    content_updated INTEGER NOT NULL DEFAULT 0,
    changes_detected TEXT,
    old_content_hash TEXT,
    new_content_hash TEXT,
    processing_duration_ms INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    started_at TEXT NOT NULL,
    completed_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_history_started ON refresh_history(started_at);
"""

# Columns holding JSON documents, per table
_JSON_COLUMNS = {
    "items": {"content", "rewritten_content", "images"},
    "freshness": set(),
    "refresh_queue": {"error_details", "metadata"},
    "content_versions": {"changes_detected", "content_snapshot", "rewritten_snapshot", "images_snapshot"},
    "refresh_history": {"changes_detected"},
}

_UPDATABLE = {
    "items": set(ContentItem.model_fields) - {"item_id"},
    "freshness": set(FreshnessRecord.model_fields) - {"item_id"},
    "refresh_queue": set(RefreshQueueItem.model_fields) - {"id"},
}


def _encode(value: Any) -> Any:
    """Convert a Python value to something sqlite3 stores as-is."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


def _to_row(model: BaseModel) -> dict[str, Any]:
    return {name: _encode(getattr(model, name)) for name in type(model).model_fields}


def _from_row(model_cls: type[M], table: str, row: sqlite3.Row) -> M:
    data = {k: row[k] for k in row.keys() if k in model_cls.model_fields}
    for column in _JSON_COLUMNS[table]:
        if data.get(column) is not None:
            data[column] = json.loads(data[column])
    return model_cls.model_validate(data)


class SQLiteStore:
    """ContentStore implementation using SQLite with WAL mode.

    Keeps every table the engine needs in one local database file, suitable
    for single-machine use without any external services. Calls run on a
    worker thread so the event loop never blocks on disk I/O.
    """

    def __init__(self, db_path: str = ".freshet/freshet.db") -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        # isolation_level=None => autocommit; each statement is its own transaction
        self._conn = sqlite3.connect(
            db_path, isolation_level=None, timeout=5, check_same_thread=False
        )
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    # -- helpers ---------------------------------------------------------------

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(self._locked, fn, *args)

    def _locked(self, fn: Callable[..., T], *args: Any) -> T:
        with self._lock:
            try:
                return fn(*args)
            except sqlite3.IntegrityError as exc:
                raise IntegrityError(f"sqlite integrity error: {exc}") from exc
            except sqlite3.Error as exc:
                raise StoreError(f"sqlite error: {exc}") from exc

    def _insert(self, table: str, row: dict[str, Any]) -> None:
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        self._conn.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", tuple(row.values()))

    def _upsert(self, table: str, key: str, row: dict[str, Any]) -> None:
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        updates = ", ".join(f"{c} = excluded.{c}" for c in row if c != key)
        self._conn.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT({key}) DO UPDATE SET {updates}",
            tuple(row.values()),
        )

    def _set_clause(self, table: str, fields: dict[str, Any]) -> tuple[str, list[Any]]:
        unknown = set(fields) - _UPDATABLE[table]
        if unknown:
            raise ValidationError(f"Unknown {table} fields: {', '.join(sorted(unknown))}")
        return ", ".join(f"{c} = ?" for c in fields), [_encode(v) for v in fields.values()]

    def _update(self, table: str, key: str, key_value: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        clause, params = self._set_clause(table, fields)
        self._conn.execute(f"UPDATE {table} SET {clause} WHERE {key} = ?", (*params, key_value))

    def _select(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        return self._conn.execute(sql, tuple(params)).fetchall()

    # -- items -----------------------------------------------------------------

    async def get_item(self, item_id: str) -> ContentItem | None:
        rows = await self._run(self._select, "SELECT * FROM items WHERE item_id = ?", (item_id,))
        return _from_row(ContentItem, "items", rows[0]) if rows else None

    async def save_item(self, item: ContentItem) -> None:
        await self._run(self._upsert, "items", "item_id", _to_row(item))

    async def update_item(self, item_id: str, fields: dict[str, Any]) -> None:
        await self._run(self._update, "items", "item_id", item_id, fields)

    # -- freshness -------------------------------------------------------------

    async def get_freshness(self, item_id: str) -> FreshnessRecord | None:
        rows = await self._run(self._select, "SELECT * FROM freshness WHERE item_id = ?", (item_id,))
        return _from_row(FreshnessRecord, "freshness", rows[0]) if rows else None

    async def save_freshness(self, record: FreshnessRecord) -> None:
        await self._run(self._upsert, "freshness", "item_id", _to_row(record))

    async def update_freshness(self, item_id: str, fields: dict[str, Any]) -> None:
        await self._run(self._update, "freshness", "item_id", item_id, fields)

    async def list_freshness(
        self,
        max_score: float | None = None,
        limit: int | None = None,
        include_archived: bool = False,
    ) -> list[FreshnessRecord]:
        """Records ordered by score ascending, so the stalest come first."""
        where: list[str] = []
        params: list[Any] = []
        if not include_archived:
            where.append("archived_at IS NULL")
        if max_score is not None:
            where.append("score < ?")
            params.append(max_score)
        sql = "SELECT * FROM freshness"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY score ASC, item_id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = await self._run(self._select, sql, params)
        return [_from_row(FreshnessRecord, "freshness", r) for r in rows]

    async def archive_freshness(self, checked_before: datetime, archived_at: datetime) -> int:
        def _archive() -> int:
            cursor = self._conn.execute(
                "UPDATE freshness SET archived_at = ? "
                "WHERE archived_at IS NULL AND is_stale = 1 AND last_checked < ?",
                (_encode(archived_at), _encode(checked_before)),
            )
            return cursor.rowcount

        return await self._run(_archive)

    # -- refresh queue ---------------------------------------------------------

    async def insert_queue_item(self, item: RefreshQueueItem) -> None:
        await self._run(self._insert, "refresh_queue", _to_row(item))

    async def get_queue_item(self, queue_id: str) -> RefreshQueueItem | None:
        rows = await self._run(self._select, "SELECT * FROM refresh_queue WHERE id = ?", (queue_id,))
        return _from_row(RefreshQueueItem, "refresh_queue", rows[0]) if rows else None

    async def list_queue_items(
        self,
        status: QueueStatus | None = None,
        limit: int | None = None,
        item_id: str | None = None,
    ) -> list[RefreshQueueItem]:
        """Entries oldest-scheduled first; priority breaks ties (1 before 10)."""
        where: list[str] = []
        params: list[Any] = []
        if status is not None:
            where.append("status = ?")
            params.append(_encode(status))
        if item_id is not None:
            where.append("item_id = ?")
            params.append(item_id)
        sql = "SELECT * FROM refresh_queue"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY scheduled_at ASC, priority ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = await self._run(self._select, sql, params)
        return [_from_row(RefreshQueueItem, "refresh_queue", r) for r in rows]

    async def transition_queue_item(
        self,
        queue_id: str,
        from_status: QueueStatus,
        to_status: QueueStatus,
        fields: dict[str, Any],
    ) -> bool:
        """Single conditional UPDATE; False if the row was no longer in *from_status*."""

        def _transition() -> bool:
            clause, params = self._set_clause("refresh_queue", {**fields, "status": to_status})
            cursor = self._conn.execute(
                f"UPDATE refresh_queue SET {clause} WHERE id = ? AND status = ?",
                (*params, queue_id, _encode(from_status)),
            )
            return cursor.rowcount == 1

        return await self._run(_transition)

    # -- versions and history --------------------------------------------------

    async def insert_version(self, version: ContentVersion) -> None:
        try:
            await self._run(self._insert, "content_versions", _to_row(version))
        except IntegrityError as exc:
            raise DuplicateVersionError(version.item_id, version.version_number) from exc

    async def get_version(self, item_id: str, version_number: int) -> ContentVersion | None:
        rows = await self._run(
            self._select,
            "SELECT * FROM content_versions WHERE item_id = ? AND version_number = ?",
            (item_id, version_number),
        )
        return _from_row(ContentVersion, "content_versions", rows[0]) if rows else None

    async def list_versions(self, item_id: str) -> list[ContentVersion]:
        rows = await self._run(
            self._select,
            "SELECT * FROM content_versions WHERE item_id = ? ORDER BY version_number ASC",
            (item_id,),
        )
        return [_from_row(ContentVersion, "content_versions", r) for r in rows]

    async def latest_version_number(self, item_id: str) -> int:
        """Highest stored version, or 0 when none has been stored."""
        rows = await self._run(
            self._select,
            "SELECT COALESCE(MAX(version_number), 0) AS latest FROM content_versions WHERE item_id = ?",
            (item_id,),
        )
        return int(rows[0]["latest"])

    async def insert_history(self, record: RefreshHistoryRecord) -> None:
        await self._run(self._insert, "refresh_history", _to_row(record))

    async def list_history(
        self,
        item_id: str | None = None,
        started_after: datetime | None = None,
        started_before: datetime | None = None,
    ) -> list[RefreshHistoryRecord]:
        where: list[str] = []
        params: list[Any] = []
        if item_id is not None:
            where.append("item_id = ?")
            params.append(item_id)
        if started_after is not None:
            where.append("started_at >= ?")
            params.append(_encode(started_after))
        if started_before is not None:
            where.append("started_at <= ?")
            params.append(_encode(started_before))
        sql = "SELECT * FROM refresh_history"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY started_at ASC, id ASC"
        rows = await self._run(self._select, sql, params)
        return [_from_row(RefreshHistoryRecord, "refresh_history", r) for r in rows]
