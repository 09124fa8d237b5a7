"""Persistent store plugin interface and the content item model."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from freshet_core.freshness.models import FreshnessRecord
from freshet_core.queue.models import QueueStatus, RefreshQueueItem
from freshet_core.versions.models import ContentVersion, RefreshHistoryRecord


class ContentItem(BaseModel):
    """The current content of one tracked item.

    ``content`` is the scraped metadata, ``rewritten_content`` its derived
    representation, and ``images`` the scraped image data.
    """

    item_id: str = Field(min_length=1)
    url: str = Field(min_length=1)
    content: dict[str, Any] | None = None
    rewritten_content: dict[str, Any] | None = None
    images: dict[str, Any] | None = None
    current_version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


@runtime_checkable
class ItemStore(Protocol):
    """Content items and their freshness records."""

    async def get_item(self, item_id: str) -> ContentItem | None: ...

    async def save_item(self, item: ContentItem) -> None: ...

    async def update_item(self, item_id: str, fields: dict[str, Any]) -> None: ...

    async def get_freshness(self, item_id: str) -> FreshnessRecord | None: ...

    async def save_freshness(self, record: FreshnessRecord) -> None: ...

    async def update_freshness(self, item_id: str, fields: dict[str, Any]) -> None: ...

    async def list_freshness(
        self,
        max_score: float | None = None,
        limit: int | None = None,
        include_archived: bool = False,
    ) -> list[FreshnessRecord]: ...

    async def archive_freshness(self, checked_before: datetime, archived_at: datetime) -> int: ...


@runtime_checkable
class QueueStore(Protocol):
    """Refresh queue rows, including the one atomic conditional update."""

    async def insert_queue_item(self, item: RefreshQueueItem) -> None: ...

    async def get_queue_item(self, queue_id: str) -> RefreshQueueItem | None: ...

    async def list_queue_items(
        self,
        status: QueueStatus | None = None,
        limit: int | None = None,
        item_id: str | None = None,
    ) -> list[RefreshQueueItem]: ...

    async def transition_queue_item(
        self,
        queue_id: str,
        from_status: QueueStatus,
        to_status: QueueStatus,
        fields: dict[str, Any],
    ) -> bool: ...


@runtime_checkable
class VersionStore(Protocol):
    """Append-only version snapshots and refresh history."""

    async def insert_version(self, version: ContentVersion) -> None: ...

    async def get_version(self, item_id: str, version_number: int) -> ContentVersion | None: ...

    async def list_versions(self, item_id: str) -> list[ContentVersion]: ...

    async def latest_version_number(self, item_id: str) -> int: ...

    async def insert_history(self, record: RefreshHistoryRecord) -> None: ...

    async def list_history(
        self,
        item_id: str | None = None,
        started_after: datetime | None = None,
        started_before: datetime | None = None,
    ) -> list[RefreshHistoryRecord]: ...


@runtime_checkable
class ContentStore(ItemStore, QueueStore, VersionStore, Protocol):
    """Full store: every table the engine reads or writes.

    ``transition_queue_item`` must be a single conditional update that
    succeeds only while the row is still in ``from_status``.
    ``insert_version`` raises ``DuplicateVersionError`` rather than
    overwriting an existing (item, version) row.
    """

    ...
