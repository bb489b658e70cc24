"""
Configuration module for the Stream Chat to ChatSDK migration tool.

Settings are resolved in layers: built-in defaults, an optional YAML file,
``DB_*`` environment variables, then command line options.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from chatsdk_migrator.constants import (
    DEFAULT_CHANNEL_BATCH_SIZE,
    DEFAULT_MESSAGE_BATCH_SIZE,
    DEFAULT_USER_BATCH_SIZE,
)
from chatsdk_migrator.exceptions import ConfigError
from chatsdk_migrator.utils.logging import log_with_context

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection parameters for the target PostgreSQL store."""

    host: str = "localhost"
    port: int = 5432
    database: str = "chatsdk"
    user: str = "chatsdk"
    password: str = "chatsdk_dev"
    ssl: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> DatabaseConfig:
        if not data:
            return cls()
        defaults = cls()
        return cls(
            host=data.get("host", defaults.host),
            port=int(data.get("port", defaults.port)),
            database=data.get("database", data.get("name", defaults.database)),
            user=data.get("user", defaults.user),
            password=data.get("password", defaults.password),
            ssl=bool(data.get("ssl", defaults.ssl)),
        )

    def with_env(self, environ: Mapping[str, str] | None = None) -> DatabaseConfig:
        """Return a copy with ``DB_HOST``/``DB_PORT``/... applied on top."""
        env = os.environ if environ is None else environ
        updates: dict[str, Any] = {}
        if env.get("DB_HOST"):
            updates["host"] = env["DB_HOST"]
        if env.get("DB_PORT"):
            try:
                updates["port"] = int(env["DB_PORT"])
            except ValueError as e:
                raise ConfigError(f"DB_PORT must be an integer, got {env['DB_PORT']!r}") from e
        if env.get("DB_NAME"):
            updates["database"] = env["DB_NAME"]
        if env.get("DB_USER"):
            updates["user"] = env["DB_USER"]
        if env.get("DB_PASSWORD"):
            updates["password"] = env["DB_PASSWORD"]
        if env.get("DB_SSL"):
            updates["ssl"] = env["DB_SSL"].strip().lower() in _TRUTHY
        return replace(self, **updates)

    def with_overrides(self, **overrides: Any) -> DatabaseConfig:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def connection_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.user,
            "password": self.password,
        }
        if self.ssl:
            kwargs["sslmode"] = "require"
        return kwargs


@dataclass
class MigrationConfig:
    """Typed configuration for a migration run."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    user_batch_size: int = DEFAULT_USER_BATCH_SIZE
    channel_batch_size: int = DEFAULT_CHANNEL_BATCH_SIZE
    message_batch_size: int = DEFAULT_MESSAGE_BATCH_SIZE

    # Channel allow-list (source channel ids); empty means every channel
    channels: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        for name in ("user_batch_size", "channel_batch_size", "message_batch_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MigrationConfig:
        """Create a MigrationConfig from a raw config dictionary."""
        return cls(
            database=DatabaseConfig.from_dict(data.get("database")),
            user_batch_size=data.get("user_batch_size", DEFAULT_USER_BATCH_SIZE),
            channel_batch_size=data.get("channel_batch_size", DEFAULT_CHANNEL_BATCH_SIZE),
            message_batch_size=data.get("message_batch_size", DEFAULT_MESSAGE_BATCH_SIZE),
            channels=list(data.get("channels") or []),
        )


def load_config(config_path: Path | None) -> MigrationConfig:
    """
    Load configuration from a YAML file and apply default values.

    A missing or unreadable file is not fatal: a warning is logged and the
    defaults are used.

    Args:
        config_path: Path to the config YAML file, or None for defaults only

    Returns:
        MigrationConfig with all necessary defaults applied
    """
    raw: dict[str, Any] = {}

    if config_path is None:
        return MigrationConfig.from_dict(raw)

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)
                # Handle None result from empty file
                if loaded_config is not None:
                    if not isinstance(loaded_config, dict):
                        raise ConfigError(
                            f"Config file {config_path} must contain a mapping"
                        )
                    raw = loaded_config
            log_with_context(logging.INFO, f"Loaded configuration from {config_path}")
        except (yaml.YAMLError, OSError) as e:
            log_with_context(
                logging.WARNING, f"Failed to load config file {config_path}: {e}"
            )
    else:
        log_with_context(
            logging.WARNING,
            f"Config file {config_path} not found, using default settings",
        )

    return MigrationConfig.from_dict(raw)


def parse_channel_list(values: tuple[str, ...] | list[str]) -> list[str]:
    """Flatten ``--channels a,b --channels c`` into ``["a", "b", "c"]``."""
    channels: list[str] = []
    for value in values:
        for part in value.split(","):
            part = part.strip()
            if part and part not in channels:
                channels.append(part)
    return channels


def resolve_config(
    config_path: Path | None,
    *,
    db_overrides: Mapping[str, Any] | None = None,
    user_batch_size: int | None = None,
    channel_batch_size: int | None = None,
    message_batch_size: int | None = None,
    channels: list[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> MigrationConfig:
    """Build the effective config: defaults < YAML < environment < CLI."""
    base = load_config(config_path)
    database = base.database.with_env(environ).with_overrides(**(db_overrides or {}))
    return MigrationConfig(
        database=database,
        user_batch_size=user_batch_size or base.user_batch_size,
        channel_batch_size=channel_batch_size or base.channel_batch_size,
        message_batch_size=message_batch_size or base.message_batch_size,
        channels=channels or base.channels,
    )
