from .loader import load_config
from .models import (
    DetectionConfig,
    FreshetConfig,
    FreshnessConfig,
    PluginsConfig,
    RegenerationConfig,
    SourceConfig,
    StoreConfig,
)

__all__ = [
    "DetectionConfig",
    "FreshetConfig",
    "FreshnessConfig",
    "PluginsConfig",
    "RegenerationConfig",
    "SourceConfig",
    "StoreConfig",
    "load_config",
]
