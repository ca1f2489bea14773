"""Frozen dataclasses for configuration and YAML loader with env-var interpolation."""

from __future__ import annotations

import os
import re
import types
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} placeholders with environment variable values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            raise ConfigurationError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class AzureConfig:
    subscription_id: str = ""
    management_url: str = "https://management.core.windows.net"
    api_version: str = "2015-04-01"
    credential_type: str = "default"  # "default" uses DefaultAzureCredential
    certificate_path: str = ""  # PEM with private key, for credential_type "certificate"
    timeout: int = 60
    operation_poll_seconds: float = 5.0
    operation_timeout_seconds: int = 1800


@dataclass(frozen=True)
class InstancesConfig:
    os_type: str = "windows"  # "windows" or "linux"
    admin_username: str = "azureadmin"
    admin_password: str = ""
    storage_account: str = ""  # holds OS and data VHDs; empty lets the provider choose
    media_container: str = "vhds"


@dataclass(frozen=True)
class StorageConfig:
    account_name: str = ""
    account_key: str = ""  # empty = DefaultAzureCredential
    max_workers: int | None = None  # unset = one worker per file


@dataclass(frozen=True)
class RemoteConfig:
    username: str = ""
    password: str = ""
    transport: str = "ntlm"
    verify_ssl: bool = True
    endpoint_name: str = "WinRmHTTPs"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"  # "json" or "text"


@dataclass(frozen=True)
class AppConfig:
    azure: AzureConfig = field(default_factory=AzureConfig)
    instances: InstancesConfig = field(default_factory=InstancesConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_dataclass_type(ft: Any) -> type | None:
    """Return the underlying dataclass type from a type annotation (handles Optional/X|None)."""
    if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__"):
        return ft
    if isinstance(ft, types.UnionType):
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    origin = getattr(ft, "__origin__", None)
    if origin is typing.Union:
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    return None


def _build_nested(cls: type, data: dict[str, Any]) -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        ft = field_types[key]
        # Resolve string annotations to actual types in the module scope
        if isinstance(ft, str):
            ft = eval(ft, globals(), {cls.__name__: cls})  # noqa: S307
        dc_type = _get_dataclass_type(ft)
        if dc_type is not None and isinstance(value, dict):
            kwargs[key] = _build_nested(dc_type, value)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def load_config(path: str | Path) -> AppConfig:
    """Load and validate configuration from a YAML file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    config = _build_nested(AppConfig, raw)
    _validate(config)
    return config


def _validate(config: AppConfig) -> None:
    """Validate configuration values."""
    if not config.azure.subscription_id:
        raise ConfigurationError("azure.subscription_id is required")

    if config.azure.credential_type not in ("default", "certificate"):
        raise ConfigurationError("azure.credential_type must be 'default' or 'certificate'")

    if config.azure.credential_type == "certificate" and not config.azure.certificate_path:
        raise ConfigurationError("azure.certificate_path is required when credential_type is 'certificate'")

    if config.azure.operation_poll_seconds <= 0:
        raise ConfigurationError("azure.operation_poll_seconds must be > 0")

    if config.instances.os_type not in ("windows", "linux"):
        raise ConfigurationError("instances.os_type must be 'windows' or 'linux'")

    if config.storage.max_workers is not None and config.storage.max_workers < 1:
        raise ConfigurationError("storage.max_workers must be >= 1")

    if config.logging.format not in ("json", "text"):
        raise ConfigurationError("logging.format must be 'json' or 'text'")
