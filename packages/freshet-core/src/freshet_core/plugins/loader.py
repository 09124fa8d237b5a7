"""Dynamic plugin discovery and loading via entry points."""

from __future__ import annotations

import importlib.metadata
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from freshet_core.config.models import FreshetConfig


class PluginNotFoundError(Exception):
    """Raised when a requested plugin cannot be found."""

    def __init__(self, plugin_type: str, name: str | None = None):
        self.plugin_type = plugin_type
        self.name = name
        msg = f"No {plugin_type} plugin found"
        if name:
            msg += f" with name '{name}'"
        super().__init__(msg)


class PluginLoader:
    """Resolves store and source classes: explicit name > config > Lite default."""

    GROUPS = {
        "store": "freshet.plugins.store",
        "source": "freshet.plugins.source",
    }

    # Lazy import paths so core never imports lite at module load
    LITE_DEFAULTS = {
        "store": ("freshet_lite.storage.sqlite_store", "SQLiteStore"),
        "source": ("freshet_lite.sources.http_source", "HttpMetadataSource"),
    }

    def __init__(self, config: FreshetConfig):
        self._config = config

    def discover(self) -> dict[str, list[str]]:
        """Scan entry points for registered plugins. Returns {type: [name, ...]}."""
        return {
            plugin_type: [ep.name for ep in importlib.metadata.entry_points(group=group)]
            for plugin_type, group in self.GROUPS.items()
        }

    def _resolve_name(self, plugin_type: str, name: str | None) -> str | None:
        if name is not None:
            return name
        return getattr(self._config.plugins, plugin_type, None)

    def _load_from_entry_point(self, plugin_type: str, name: str) -> type | None:
        for ep in importlib.metadata.entry_points(group=self.GROUPS[plugin_type]):
            if ep.name == name:
                return ep.load()
        return None

    def _load_lite_default(self, plugin_type: str) -> type | None:
        module_path, class_name = self.LITE_DEFAULTS[plugin_type]
        try:
            module = __import__(module_path, fromlist=[class_name])
            return getattr(module, class_name)
        except (ImportError, AttributeError):
            return None

    def _load_plugin(self, plugin_type: str, name: str | None) -> type:
        resolved = self._resolve_name(plugin_type, name)
        if resolved is not None:
            plugin_cls = self._load_from_entry_point(plugin_type, resolved)
            # An explicit name that doesn't resolve is an error, not a fallback
            if plugin_cls is None:
                raise PluginNotFoundError(plugin_type, resolved)
            return plugin_cls
        plugin_cls = self._load_lite_default(plugin_type)
        if plugin_cls is None:
            raise PluginNotFoundError(plugin_type)
        return plugin_cls

    def load_store(self, name: str | None = None) -> type:
        return self._load_plugin("store", name)

    def load_source(self, name: str | None = None) -> type:
        return self._load_plugin("source", name)
