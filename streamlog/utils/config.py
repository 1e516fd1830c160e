"""
Layered configuration for streamlog.

Later layers win:
1. Built-in defaults (``DEFAULTS``)
2. ``config/default.yaml`` next to the package checkout, when present
3. A user YAML file (``--config`` or ``STREAMLOG_CONFIG``)
4. Environment variables (``ENV_OVERRIDES``)

Values are read with dot-notation keys such as ``"stream.sequence_bits"``.
"""

import copy
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

from streamlog.errors import ValidationError

DEFAULTS: Dict[str, Any] = {
    "stream": {
        "sequence_bits": 64,
        "overflow_retries": 1,
        "overflow_wait_ms": 1,
    },
    "consumer": {
        "autoclaim_count": 100,
    },
    "logging": {
        "level": "INFO",
        "format": "console",
        "output": "stderr",
    },
}

# env var -> (config key, parser)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "LOG_LEVEL": ("logging.level", str),
    "LOG_FORMAT": ("logging.format", str),
    "STREAMLOG_SEQUENCE_BITS": ("stream.sequence_bits", int),
    "STREAMLOG_OVERFLOW_RETRIES": ("stream.overflow_retries", int),
}

# key -> smallest accepted value
_INT_BOUNDS: Dict[str, int] = {
    "stream.sequence_bits": 1,
    "stream.overflow_retries": 0,
    "stream.overflow_wait_ms": 0,
    "consumer.autoclaim_count": 1,
}

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "default.yaml"


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two nested dicts; values from ``override`` win.

    Args:
        base: Base mapping (not modified)
        override: Mapping merged on top

    Returns:
        New merged mapping
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_yaml(path: str) -> Dict[str, Any]:
    """
    Read a YAML mapping.

    Raises:
        ValidationError: If the file holds something other than a mapping
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"configuration file {path} must contain a mapping")
    return data


class Config:
    """Configuration manager for streamlog."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Load every layer.

        Args:
            config_file: Optional user YAML file

        Raises:
            ValidationError: On an unreadable layer or an out-of-range value
        """
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULTS)

        if DEFAULT_CONFIG_PATH.exists():
            self._config = deep_merge(self._config, load_yaml(str(DEFAULT_CONFIG_PATH)))

        if config_file:
            self._config = deep_merge(self._config, load_yaml(config_file))

        for env_var, (key, parse) in ENV_OVERRIDES.items():
            raw = os.getenv(env_var)
            if not raw:
                continue
            try:
                self.set(key, parse(raw))
            except ValueError:
                raise ValidationError(f"{env_var}={raw!r} is not a valid {parse.__name__}")

        self.validate()

    def validate(self) -> None:
        """
        Check numeric settings.

        Raises:
            ValidationError: If a value is not an integer or below its minimum
        """
        for key, minimum in _INT_BOUNDS.items():
            value = self.get(key)
            if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
                raise ValidationError(f"{key} must be an integer >= {minimum}, got {value!r}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a value by dot-notation key.

        Args:
            key: e.g. ``"consumer.autoclaim_count"``
            default: Returned when any part of the path is missing

        Returns:
            Configured value
        """
        node: Any = self._config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a value by dot-notation key, creating sections as needed."""
        *sections, leaf = key.split(".")
        node = self._config
        for part in sections:
            node = node.setdefault(part, {})
        node[leaf] = value

    def to_dict(self) -> Dict[str, Any]:
        """Deep copy of the merged configuration."""
        return copy.deepcopy(self._config)


_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get the process-wide configuration, loading it on first use.

    Args:
        config_file: User YAML file; falls back to ``STREAMLOG_CONFIG``

    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = Config(config_file or os.getenv("STREAMLOG_CONFIG"))
    return _config


def reset_config() -> None:
    """Drop the process-wide configuration (used by tests)."""
    global _config
    _config = None
