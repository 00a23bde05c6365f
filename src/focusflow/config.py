"""YAML configuration for FocusFlow sessions and the CLI."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "ConfigError",
    "config_value",
    "load_config",
    "resolve_path",
    "write_config",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "focusflow.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "session": {
        "tier": "standard",
        "owner": "local",
    },
    "models": {
        "generation": "gemini-2.5-pro",
        "refinement": "gemini-2.5-flash-lite",
        "generation_temperature": 0.7,
        "refinement_temperature": 0.3,
        "max_output_tokens": 16384,
        "timeout": 120,
        "api_key_env": "GEMINI_API_KEY",
    },
    "refinement": {
        "reorder_policy": "drop",
    },
    "storage": {
        "root": "data/uploads",
        "chunk_size": 6 * 1024 * 1024,
    },
    "telemetry": {
        "enabled": True,
        "batch_size": 10,
        "flush_interval": 5.0,
        "max_buffer": 500,
        "overflow": "drop_oldest",
        "events_file": "events.jsonl",
    },
    "paths": {
        "data": "data",
        "logs": "data/logs",
    },
    "logging": {
        "level": "WARNING",
    },
}


class ConfigError(ValueError):
    """Raised when the configuration file cannot be used."""


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(path: Optional[Path | str] = None) -> Dict[str, Any]:
    """Return the defaults overlaid with ``path`` when it exists."""
    config = copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)
    if path is None:
        return config
    config_path = Path(path)
    if not config_path.exists():
        LOGGER.debug("Config file %s not found; using defaults", config_path)
        return config
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Invalid YAML in {config_path}: {error}") from error
    if not isinstance(loaded, Mapping):
        raise ConfigError(f"{config_path} must contain a mapping at the top level.")
    config = _deep_merge(config, loaded)
    config.setdefault("paths", {})["config"] = config_path.as_posix()
    return config


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def config_value(config: Mapping[str, Any], dotted: str, default: Any = None) -> Any:
    """Look up ``section.key`` style paths, returning ``default`` when absent."""
    node: Any = config
    for part in dotted.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return default
        node = node[part]
    return node


def resolve_path(config: Mapping[str, Any], dotted: str, base: Optional[Path] = None) -> Path:
    """Resolve a configured path relative to ``base`` (the working directory by default)."""
    value = config_value(config, dotted)
    if value is None:
        raise ConfigError(f"Missing configuration value {dotted!r}")
    candidate = Path(str(value))
    if candidate.is_absolute():
        return candidate
    return (base or Path.cwd()) / candidate
