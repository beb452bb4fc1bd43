"""Configuration loader for the Microsoft Graph upload client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from exceldrive.core.errors import ConfigError
from exceldrive.core.logger import get_logger
from exceldrive.core.settings import expand_env, load_layered_settings

LOGGER = get_logger()

CHUNK_BOUNDARY = 320 * 1024
DEFAULT_CHUNK_SIZE = 16 * CHUNK_BOUNDARY  # 5 MiB
DEFAULT_TIMEOUT = 30.0
DEFAULT_UPLOAD_PATH = "/UploadFolder/WorksheetName.xlsx"
DEFAULT_SHEET_NAME = "SheetName"
DEFAULT_AUTHORITY_URL = "https://login.microsoftonline.com"
DEFAULT_GRAPH_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_SCOPE = "https://graph.microsoft.com/.default"

SETTINGS_SECTION = "graph"

CLIENT_ID_ENV = "EXCELDRIVE_CLIENT_ID"
CLIENT_SECRET_ENV = "EXCELDRIVE_CLIENT_SECRET"
TENANT_ID_ENV = "EXCELDRIVE_TENANT_ID"
UPN_ENV = "EXCELDRIVE_UPN"
UPLOAD_PATH_ENV = "EXCELDRIVE_UPLOAD_PATH"
SHEET_NAME_ENV = "EXCELDRIVE_SHEET_NAME"
CHUNK_SIZE_ENV = "EXCELDRIVE_CHUNK_SIZE"
TIMEOUT_ENV = "EXCELDRIVE_TIMEOUT_SEC"
RETRY_ATTEMPTS_ENV = "EXCELDRIVE_RETRY_ATTEMPTS"
RETRY_BACKOFF_MS_ENV = "EXCELDRIVE_RETRY_BACKOFF_MS"
RETRY_MAX_BACKOFF_MS_ENV = "EXCELDRIVE_RETRY_MAX_BACKOFF_MS"


@dataclass(slots=True)
class RetryConfig:
    """Retry parameters for token and Graph API requests."""

    max_attempts: int = 3
    backoff_ms: int = 500
    max_backoff_ms: int = 8000

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "RetryConfig":
        if not data:
            return cls()
        defaults = cls()
        return cls(
            max_attempts=_as_int(data.get("max_attempts", defaults.max_attempts), "retries.max_attempts"),
            backoff_ms=_as_int(data.get("backoff_ms", defaults.backoff_ms), "retries.backoff_ms"),
            max_backoff_ms=_as_int(data.get("max_backoff_ms", defaults.max_backoff_ms), "retries.max_backoff_ms"),
        )


@dataclass(slots=True)
class GraphConfig:
    """Resolved configuration for one export run."""

    client_id: str
    client_secret: str
    tenant_id: str
    upn: str
    upload_path: str = DEFAULT_UPLOAD_PATH
    sheet_name: str = DEFAULT_SHEET_NAME
    chunk_size: int = DEFAULT_CHUNK_SIZE
    timeout_sec: float = DEFAULT_TIMEOUT
    retries: RetryConfig = field(default_factory=RetryConfig)
    authority_url: str = DEFAULT_AUTHORITY_URL
    graph_url: str = DEFAULT_GRAPH_URL
    scope: str = DEFAULT_SCOPE
    verify_tls: bool = True
    trust_env: bool = True
    proxies: Mapping[str, str] | None = None

    @property
    def token_url(self) -> str:
        return f"{self.authority_url.rstrip('/')}/{self.tenant_id}/oauth2/v2.0/token"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GraphConfig":
        """Create a configuration instance from a mapping.

        Raises:
            ConfigError: If a required value is missing or a value is malformed.
        """

        def _require(key: str) -> str:
            value = expand_env(data.get(key))
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ConfigError(f"Missing required Graph config value: {key}")
            return str(value).strip()

        proxies_raw = data.get("proxies")
        proxies: Mapping[str, str] | None = None
        if isinstance(proxies_raw, Mapping):
            proxies = {str(k): expand_env(v) for k, v in proxies_raw.items()}

        retries_raw = data.get("retries")
        config = cls(
            client_id=_require("client_id"),
            client_secret=_require("client_secret"),
            tenant_id=_require("tenant_id"),
            upn=_require("upn"),
            upload_path=str(expand_env(data.get("upload_path") or DEFAULT_UPLOAD_PATH)),
            sheet_name=str(expand_env(data.get("sheet_name") or DEFAULT_SHEET_NAME)),
            chunk_size=_as_int(data.get("chunk_size", DEFAULT_CHUNK_SIZE), "chunk_size"),
            timeout_sec=_as_float(data.get("timeout_sec", DEFAULT_TIMEOUT), "timeout_sec"),
            retries=RetryConfig.from_mapping(retries_raw if isinstance(retries_raw, Mapping) else None),
            authority_url=str(expand_env(data.get("authority_url") or DEFAULT_AUTHORITY_URL)),
            graph_url=str(expand_env(data.get("graph_url") or DEFAULT_GRAPH_URL)),
            scope=str(expand_env(data.get("scope") or DEFAULT_SCOPE)),
            verify_tls=_as_bool(data.get("verify_tls", True)),
            trust_env=_as_bool(data.get("trust_env", True)),
            proxies=proxies,
        )
        validate_chunk_size(config.chunk_size)
        return config


def validate_chunk_size(chunk_size: int, boundary: int = CHUNK_BOUNDARY) -> int:
    """Ensure ``chunk_size`` is a positive multiple of the upload boundary."""

    if chunk_size <= 0 or chunk_size % boundary != 0:
        raise ConfigError(f"chunk_size must be a positive multiple of {boundary} bytes, got {chunk_size}")
    return chunk_size


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Config value {key} must be an integer") from exc


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Config value {key} must be a number") from exc


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _read_env(key: str) -> str | None:
    value = os.getenv(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _read_env_int(key: str) -> int | None:
    value = _read_env(key)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as exc:  # noqa: BLE001 - configuration validation
        raise ConfigError(f"Environment variable {key} must be an integer") from exc


def _read_env_float(key: str) -> float | None:
    value = _read_env(key)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError as exc:  # noqa: BLE001 - configuration validation
        raise ConfigError(f"Environment variable {key} must be a number") from exc


def env_overrides() -> dict[str, Any]:
    """Collect configuration values set through environment variables."""

    overrides: dict[str, Any] = {}
    for key, env_name in (
        ("client_id", CLIENT_ID_ENV),
        ("client_secret", CLIENT_SECRET_ENV),
        ("tenant_id", TENANT_ID_ENV),
        ("upn", UPN_ENV),
        ("upload_path", UPLOAD_PATH_ENV),
        ("sheet_name", SHEET_NAME_ENV),
    ):
        value = _read_env(env_name)
        if value is not None:
            overrides[key] = value

    chunk_size = _read_env_int(CHUNK_SIZE_ENV)
    if chunk_size is not None:
        overrides["chunk_size"] = chunk_size
    timeout = _read_env_float(TIMEOUT_ENV)
    if timeout is not None:
        overrides["timeout_sec"] = timeout

    retries: dict[str, int] = {}
    for key, env_name in (
        ("max_attempts", RETRY_ATTEMPTS_ENV),
        ("backoff_ms", RETRY_BACKOFF_MS_ENV),
        ("max_backoff_ms", RETRY_MAX_BACKOFF_MS_ENV),
    ):
        value = _read_env_int(env_name)
        if value is not None:
            retries[key] = value
    if retries:
        overrides["retries"] = retries
    return overrides


def resolve_config(
    environment: str | None = None,
    *,
    config_dir: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> GraphConfig:
    """Resolve configuration from settings files, environment variables and overrides.

    Precedence, lowest first: ``settings.yaml``, ``settings.<env>.yaml``,
    environment variables, then explicit ``overrides`` (CLI options).
    """

    settings = load_layered_settings(environment, config_dir=config_dir)
    section = settings.get(SETTINGS_SECTION) or {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"Settings section '{SETTINGS_SECTION}' must be a mapping")

    merged: dict[str, Any] = dict(section)
    for layer in (env_overrides(), overrides or {}):
        for key, value in layer.items():
            if value is None:
                continue
            if key == "retries" and isinstance(merged.get("retries"), Mapping):
                merged["retries"] = {**merged["retries"], **value}
            else:
                merged[key] = value

    config = GraphConfig.from_mapping(merged)
    LOGGER.info(
        "graph.config resolved environment=%s upn=%s path=%s chunk_size=%d",
        environment or os.getenv("EXCELDRIVE_ENV") or "<base>",
        config.upn,
        config.upload_path,
        config.chunk_size,
    )
    return config


__all__ = [
    "CHUNK_BOUNDARY",
    "DEFAULT_CHUNK_SIZE",
    "GraphConfig",
    "RetryConfig",
    "env_overrides",
    "resolve_config",
    "validate_chunk_size",
]
