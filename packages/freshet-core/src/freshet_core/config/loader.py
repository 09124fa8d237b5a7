"""Locate, read, and validate freshet.yaml."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import FreshetConfig

PROJECT_CONFIG = Path("freshet.yaml")
USER_CONFIG = Path("~/.freshet/config.yaml")

_ENV_REF = re.compile(r"\$\{(\w+)\}")


def config_search_path(cli_path: str | None = None) -> list[Path]:
    """Candidate files, most specific first. An explicit path must exist."""
    if cli_path:
        explicit = Path(cli_path)
        if not explicit.is_file():
            raise ValueError(f"Config file not found: {explicit}")
        return [explicit]
    return [PROJECT_CONFIG, USER_CONFIG.expanduser()]


def load_config(cli_path: str | None = None) -> FreshetConfig:
    for path in config_search_path(cli_path):
        if not path.is_file():
            continue
        raw = _read_mapping(path)
        if raw is None:
            continue
        try:
            return FreshetConfig.model_validate(_expand_env_vars(raw))
        except ValidationError as e:
            raise ValueError(f"Invalid config in {path}: {e}") from e
    return FreshetConfig()


def _read_mapping(path: Path) -> dict[str, Any] | None:
    try:
        raw = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if raw is not None and not isinstance(raw, dict):
        raise ValueError(f"Invalid config in {path}: top level must be a mapping")
    return raw


def _env_lookup(ref: re.Match[str]) -> str:
    return os.environ.get(ref.group(1), "")


def _expand_env_vars(value: Any) -> Any:
    """Substitute ${VAR} in every string; unset variables become empty."""
    if isinstance(value, str):
        return _ENV_REF.sub(_env_lookup, value)
    if isinstance(value, dict):
        return {key: _expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    return value


# Default YAML template for `freshet config init`
DEFAULT_CONFIG_TEMPLATE = """\
# freshet.yaml

# Freshness scoring and scheduling
freshness:
  default_policy: "default"
  stale_score: 50              # is_stale when the score drops below this
  critical_score: 30           # always schedule a refresh below this
  check_score: 70              # run-check picks up items scoring below this
  archive_after_hours: 720
  batch_size: 50
  # Setting policies replaces the built-in set
  # policies:
  #   default:
  #     max_age_hours: 168
  #     stale_threshold_hours: 720
  #     check_frequency_hours: 24

# Change detection
detection:
  significance_threshold: 0.10
  default_weight: 0.05
  # field_weights:
  #   title: 0.40
  #   description: 0.30

# Regeneration
regeneration:
  concurrency: 5
  update_rewritten_content: true

# Metadata source
source:
  timeout: 15
  max_attempts: 3
  retry_delay: 1.0
  max_delay: 30.0
  # total_timeout: 60          # whole-fetch limit; defaults to every attempt plus backoff
  max_images: 10

# Store
store:
  db_path: ".freshet/freshet.db"

# Plugins (entry point names; empty uses the Lite defaults)
# plugins:
#   store: "sqlite"
#   source: "http"

# Logging
log_level: "info"              # debug | info | warn | error
log_format: "text"             # text | json
"""
