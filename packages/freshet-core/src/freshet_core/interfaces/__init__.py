"""Plugin interfaces for stores and content collaborators."""

from freshet_core.interfaces.store import (
    ContentItem,
    ContentStore,
    ItemStore,
    QueueStore,
    VersionStore,
)

__all__ = [
    "ContentItem",
    "ContentStore",
    "ItemStore",
    "QueueStore",
    "VersionStore",
]
