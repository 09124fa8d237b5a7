"""Error taxonomy shared by the engine and its adapters."""

from __future__ import annotations

from typing import Literal

FetchErrorKind = Literal["network", "timeout", "http", "parse"]


class FreshetError(Exception):
    """Base class for every error raised by the engine."""

    retryable: bool = False


class NotFoundError(FreshetError):
    """An item, freshness record, policy, queue entry, or version is absent."""

    def __init__(self, kind: str, key: object) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ValidationError(FreshetError):
    """Bad argument: unknown refresh type, invalid rollback target, etc."""


class InvalidTransitionError(ValidationError):
    """A queue status move that would break monotonic ordering."""

    def __init__(self, queue_id: str, current: str, target: str) -> None:
        self.queue_id = queue_id
        self.current = current
        self.target = target
        super().__init__(f"queue item {queue_id}: cannot move {current} -> {target}")


class SourceFetchError(FreshetError):
    """Wraps network, timeout, HTTP status, and parse failures from a source."""

    def __init__(
        self,
        url: str,
        kind: FetchErrorKind,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.url = url
        self.kind = kind
        self.status_code = status_code
        # Server-side errors and transport failures may clear up on their own
        self.retryable = kind in ("network", "timeout") or (
            kind == "http" and status_code is not None and status_code >= 500
        )
        super().__init__(f"{kind} error fetching {url}: {message}")


class StoreError(FreshetError):
    """The persistence layer failed."""


class IntegrityError(StoreError):
    """A store-integrity violation the caller may retry."""

    retryable = True


class DuplicateVersionError(IntegrityError):
    def __init__(self, item_id: str, version_number: int) -> None:
        self.item_id = item_id
        self.version_number = version_number
        super().__init__(f"version {version_number} already exists for {item_id}")


class ClaimConflictError(IntegrityError):
    """Another worker claimed the queue entry first."""

    def __init__(self, queue_id: str) -> None:
        self.queue_id = queue_id
        super().__init__(f"queue item {queue_id} is no longer pending")
