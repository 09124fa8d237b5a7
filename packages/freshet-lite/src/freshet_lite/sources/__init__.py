"""HTTP metadata source for scraping third-party pages."""

from __future__ import annotations

from freshet_lite.sources.http_source import HttpMetadataSource, extract_images, extract_metadata

__all__ = ["HttpMetadataSource", "extract_images", "extract_metadata"]
