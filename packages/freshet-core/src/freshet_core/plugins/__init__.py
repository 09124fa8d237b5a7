"""Dynamic plugin discovery and loading."""

from freshet_core.plugins.loader import PluginLoader, PluginNotFoundError

__all__ = ["PluginLoader", "PluginNotFoundError"]
