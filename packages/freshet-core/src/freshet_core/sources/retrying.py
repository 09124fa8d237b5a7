"""Retry decorator around a MetadataSource."""

from __future__ import annotations

import logging
from typing import Any

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from freshet_core.errors import SourceFetchError
from freshet_core.sources.base import MetadataSource

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, SourceFetchError) and exc.retryable


class RetryingSource(MetadataSource):
    """Wraps another source with exponential backoff on retryable fetch errors.

    Parse failures and 4xx responses surface immediately; transport errors,
    timeouts, and 5xx responses are retried up to ``max_attempts`` total
    calls. The last error is re-raised unchanged.
    """

    def __init__(
        self,
        inner: MetadataSource,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        max_delay: float = 30.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.inner = inner
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.max_delay = max_delay

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_delay, max=self.max_delay),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def fetch_metadata(self, url: str) -> dict[str, Any]:
        async for attempt in self._retrying():
            with attempt:
                return await self.inner.fetch_metadata(url)
        raise AssertionError("unreachable")  # pragma: no cover

    async def fetch_images(self, url: str) -> dict[str, Any]:
        async for attempt in self._retrying():
            with attempt:
                return await self.inner.fetch_images(url)
        raise AssertionError("unreachable")  # pragma: no cover
