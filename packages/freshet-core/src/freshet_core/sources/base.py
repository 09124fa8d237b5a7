"""Abstract interfaces for external content collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class MetadataSource(ABC):
    """Fetches fresh structured data for a third-party URL.

    Implementations raise ``SourceFetchError`` for network, timeout, HTTP
    status, and parse failures. Retries belong to a wrapping source such
    as ``RetryingSource``, never to the caller.
    """

    @abstractmethod
    async def fetch_metadata(self, url: str) -> dict[str, Any]:
        """Return the page's metadata snapshot (title, description, tags, ...)."""
        ...

    @abstractmethod
    async def fetch_images(self, url: str) -> dict[str, Any]:
        """Return the page's image snapshot (primary image, favicon, gallery)."""
        ...


class ContentRewriter(ABC):
    """Derives the rewritten representation of fresh content."""

    @abstractmethod
    async def rewrite(self, content: dict[str, Any]) -> dict[str, Any]:
        ...
