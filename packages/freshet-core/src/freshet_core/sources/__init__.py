"""External content sources and the retry wrapper around them."""

from freshet_core.sources.base import ContentRewriter, MetadataSource
from freshet_core.sources.retrying import RetryingSource

__all__ = ["ContentRewriter", "MetadataSource", "RetryingSource"]
