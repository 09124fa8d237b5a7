"""Refresh queue models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RefreshType(str, Enum):
    metadata = "metadata"
    ai_regeneration = "ai_regeneration"
    validation = "validation"
    full = "full"


class QueueStatus(str, Enum):
    """Lifecycle states for a refresh queue entry."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


OPEN_STATUSES = (QueueStatus.pending, QueueStatus.processing)


class RefreshQueueItem(BaseModel):
    """A scheduled unit of regeneration work.

    Mutable: status, timestamps, worker and error fields change as the
    entry moves through its lifecycle.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), min_length=1)
    item_id: str = Field(min_length=1)
    refresh_type: RefreshType = RefreshType.metadata
    priority: int = Field(default=5, ge=1, le=10)
    status: QueueStatus = QueueStatus.pending
    scheduled_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    worker_id: str | None = None
    error_message: str | None = None
    error_details: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
