"""CLI configuration management.

Settings live in ~/.paasctl/config.yaml and can be overridden per shell
with environment variables and per invocation with global flags:

    flag  >  PAASCTL_* environment  >  config file  >  default

`kubeconfig` additionally honours the standard KUBECONFIG variable when
nothing else set it. Each value remembers where it came from, which
`paasctl config show` prints.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MULTIPLIER = 1
DEFAULT_LOG_LEVEL = "warning"

CONFIG_KEYS = ("kubeconfig", "timeout_multiplier", "log_level")

ENV_VARS = {
    "kubeconfig": "PAASCTL_KUBECONFIG",
    "timeout_multiplier": "PAASCTL_TIMEOUT_MULTIPLIER",
    "log_level": "PAASCTL_LOG_LEVEL",
}

_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "kubeconfig": str,
    "timeout_multiplier": int,
    "log_level": str,
}


@dataclass
class CLIConfig:
    """CLI configuration."""

    kubeconfig: str | None = None
    timeout_multiplier: int = DEFAULT_TIMEOUT_MULTIPLIER
    log_level: str = DEFAULT_LOG_LEVEL

    # key -> "default" | "config file" | "environment" | "flag"
    _sources: dict[str, str] = field(default_factory=dict)

    def get_source(self, key: str) -> str:
        return self._sources.get(key, "default")

    def override(self, key: str, value: Any) -> None:
        """Apply a global CLI flag; None means the flag was not given."""
        if value is None:
            return
        setattr(self, key, value)
        self._sources[key] = "flag"

    def _apply(self, key: str, raw: Any, source: str) -> None:
        try:
            value = _CONVERTERS[key](raw)
        except (TypeError, ValueError):
            logger.warning("ignoring invalid config value", key=key, value=raw, source=source)
            return
        setattr(self, key, value)
        self._sources[key] = source


def get_config_path() -> Path:
    """Path to ~/.paasctl/config.yaml."""
    return Path.home() / ".paasctl" / "config.yaml"


def _read_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _write_file(path: Path, values: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(values, f, default_flow_style=False)


def load_config() -> CLIConfig:
    """Load configuration from file and environment.

    Flags are applied afterwards by the caller with CLIConfig.override().
    An unreadable config file is logged and ignored.
    """
    config = CLIConfig(_sources={key: "default" for key in CONFIG_KEYS})

    config_path = get_config_path()
    try:
        file_values = _read_file(config_path)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("config file unreadable, using defaults", path=str(config_path), error=str(e))
        file_values = {}

    for key in CONFIG_KEYS:
        if key in file_values:
            config._apply(key, file_values[key], "config file")

    for key, env_var in ENV_VARS.items():
        if os.environ.get(env_var):
            config._apply(key, os.environ[env_var], "environment")

    if os.environ.get("KUBECONFIG") and config.get_source("kubeconfig") == "default":
        config._apply("kubeconfig", os.environ["KUBECONFIG"], "environment")

    return config


def save_config(key: str, value: Any) -> None:
    """Persist one value, keeping the others in the file.

    Raises:
        ValueError: key is not one of CONFIG_KEYS
    """
    if key not in CONFIG_KEYS:
        raise ValueError(f"Unknown config key: {key}")

    config_path = get_config_path()
    values = _read_file(config_path)
    values[key] = value
    _write_file(config_path, values)


def unset_config(key: str) -> bool:
    """Remove one value from the file.

    Returns:
        True if key was removed, False if it was not set
    """
    config_path = get_config_path()
    values = _read_file(config_path)
    if key not in values:
        return False

    del values[key]
    _write_file(config_path, values)
    return True
