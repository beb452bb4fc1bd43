"""Layered settings loading for exceldrive runtime files.

Settings are read from ``settings.yaml`` and an optional
``settings.<env>.yaml`` overlay. Environment variables (including those from a
``.env`` file) are applied on top by the service-specific loaders.
"""

from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

ENVIRONMENT_ENV = "EXCELDRIVE_ENV"
CONFIG_DIR_ENV = "EXCELDRIVE_CONFIG_DIR"
WORK_DIR_ENV = "EXCELDRIVE_WORK_DIR"

BASE_SETTINGS_FILE = "settings.yaml"


def _package_config_dir() -> Path:
    # This file lives under <package>/core
    return Path(__file__).resolve().parents[1] / "config"


def _config_dir() -> Path:
    env = os.getenv(CONFIG_DIR_ENV)
    if env:
        return Path(env)
    return _package_config_dir()


def _work_dir() -> Path:
    env = os.getenv(WORK_DIR_ENV)
    if env:
        return Path(env)
    return Path.cwd() / "work"


def resolve_environment(environment: str | None = None) -> str | None:
    """Return the active environment name, falling back to ``EXCELDRIVE_ENV``."""

    value = environment if environment is not None else os.getenv(ENVIRONMENT_ENV)
    if value is None:
        return None
    value = value.strip()
    return value or None


def overlay_file_name(environment: str) -> str:
    return f"settings.{environment}.yaml"


def deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``overlay`` into a copy of ``base`` recursing into nested mappings."""

    merged: dict[str, Any] = deepcopy(dict(base))
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Settings file {path} must contain a mapping at top level")
    return dict(data)


def load_layered_settings(
    environment: str | None = None,
    *,
    config_dir: str | Path | None = None,
    dotenv: bool = True,
) -> dict[str, Any]:
    """Load the base settings file merged with its environment overlay.

    Args:
        environment: Overlay name; ``settings.<environment>.yaml`` is merged on
            top of the base file when it exists. Defaults to ``EXCELDRIVE_ENV``.
        config_dir: Directory holding the settings files. Defaults to
            ``EXCELDRIVE_CONFIG_DIR`` or the packaged ``config`` directory.
        dotenv: Load a ``.env`` file into the process environment first. Real
            environment variables are never overridden.

    Returns:
        The merged settings mapping. Both files are optional, so an empty
        mapping is a valid result.

    Raises:
        ConfigError: If a settings file exists but cannot be parsed.
    """

    if dotenv:
        load_dotenv(override=False)

    directory = Path(config_dir) if config_dir is not None else _config_dir()
    settings: dict[str, Any] = {}

    base_path = directory / BASE_SETTINGS_FILE
    if base_path.exists():
        settings = _read_yaml(base_path)

    env_name = resolve_environment(environment)
    if env_name:
        overlay_path = directory / overlay_file_name(env_name)
        if overlay_path.exists():
            settings = deep_merge(settings, _read_yaml(overlay_path))
    return settings


def expand_env(value: Any) -> Any:
    """Expand ``${VAR}`` references, failing loudly when a variable is unset."""

    if isinstance(value, str):
        expanded = os.path.expandvars(value)
        if "${" in value and "}" in value and expanded == value:
            raise ConfigError(f"Environment variable not set for value: {value}")
        return expanded
    return value
