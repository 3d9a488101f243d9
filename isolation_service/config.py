# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Service settings.

Settings come from environment variables. An optional YAML file
(``ISOLATION_CONFIG_FILE``) may provide the same values; ``${VAR:default}``
placeholders in the file are substituted from the environment, and variables
that are actually set in the environment win over file values.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .cache.config import CacheConfig
from .database.manager import DatabaseConfig
from .errors import ConfigurationError
from .streams.config import SINGLE_STREAM, TOPIC_ROUTING, StreamConfig

logger = logging.getLogger(__name__)


class DatasourceStrategy(str, Enum):
    ROUTING = "routing"  # two databases, routed per unit of work
    SESSION = "session"  # one database, session marker + row-level security


class StreamStrategy(str, Enum):
    SINGLE = SINGLE_STREAM
    TOPIC = TOPIC_ROUTING


# YAML path -> environment variable it stands for
FILE_KEYS: dict[str, str] = {
    "app.log_level": "LOG_LEVEL",
    "app.create_schema": "CREATE_SCHEMA",
    "app.echo_traffic_headers": "ECHO_TRAFFIC_HEADERS",
    "datasource.strategy": "DATASOURCE_STRATEGY",
    "datasource.url": "DATABASE_URL",
    "datasource.host": "DB_HOST",
    "datasource.port": "DB_PORT",
    "datasource.name": "DB_NAME",
    "datasource.real.url": "REAL_DATABASE_URL",
    "datasource.real.user": "REAL_DB_USER",
    "datasource.real.password": "REAL_DB_PASSWORD",
    "datasource.test.url": "TEST_DATABASE_URL",
    "datasource.test.user": "TEST_DB_USER",
    "datasource.test.password": "TEST_DB_PASSWORD",
    "cache.backend": "CACHE_BACKEND",
    "cache.redis.host": "REDIS_HOST",
    "cache.redis.port": "REDIS_PORT",
    "cache.real.key_prefix": "CACHE_REAL_KEY_PREFIX",
    "cache.real.ttl_seconds": "CACHE_REAL_TTL_SECONDS",
    "cache.real.username": "CACHE_REAL_USERNAME",
    "cache.real.password": "CACHE_REAL_PASSWORD",
    "cache.test.key_prefix": "CACHE_TEST_KEY_PREFIX",
    "cache.test.ttl_seconds": "CACHE_TEST_TTL_SECONDS",
    "cache.test.username": "CACHE_TEST_USERNAME",
    "cache.test.password": "CACHE_TEST_PASSWORD",
    "stream.strategy": "STREAM_STRATEGY",
    "stream.consumers_enabled": "STREAM_CONSUMERS_ENABLED",
    "stream.shared.name": "STREAM_SHARED_NAME",
    "stream.shared.group": "STREAM_SHARED_GROUP",
    "stream.real.name": "STREAM_REAL_NAME",
    "stream.real.group": "STREAM_REAL_GROUP",
    "stream.test.name": "STREAM_TEST_NAME",
    "stream.test.group": "STREAM_TEST_GROUP",
}


@dataclass
class IsolationSettings:
    datasource_strategy: DatasourceStrategy = DatasourceStrategy.ROUTING
    real_database: DatabaseConfig = field(default_factory=lambda: DatabaseConfig("REAL_", name="real"))
    test_database: DatabaseConfig = field(default_factory=lambda: DatabaseConfig("TEST_", name="test"))
    shared_database: DatabaseConfig = field(default_factory=lambda: DatabaseConfig("", name="shared"))
    cache: CacheConfig = field(default_factory=CacheConfig)
    stream_strategy: StreamStrategy = StreamStrategy.SINGLE
    stream: StreamConfig = field(default_factory=StreamConfig)
    log_level: str = "INFO"
    create_schema: bool = False
    echo_traffic_headers: bool = True

    @classmethod
    def from_environment(cls, env: Mapping[str, str] | None = None) -> IsolationSettings:
        env = os.environ if env is None else env
        return cls(
            datasource_strategy=_enum(DatasourceStrategy, env.get("DATASOURCE_STRATEGY", "routing")),
            real_database=DatabaseConfig("REAL_", env, name="real"),
            test_database=DatabaseConfig("TEST_", env, name="test"),
            shared_database=DatabaseConfig("", env, name="shared"),
            cache=CacheConfig.from_environment(env),
            stream_strategy=_enum(StreamStrategy, env.get("STREAM_STRATEGY", SINGLE_STREAM)),
            stream=StreamConfig.from_environment(env),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            create_schema=env.get("CREATE_SCHEMA", "false").lower() == "true",
            echo_traffic_headers=env.get("ECHO_TRAFFIC_HEADERS", "true").lower() == "true",
        )


def _enum(enum_cls, value: str):
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"Unknown {enum_cls.__name__} '{value}' (expected one of: {allowed})") from None


_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(content: str, env: Mapping[str, str] | None = None) -> str:
    """Replace ``${VAR}`` and ``${VAR:default}`` placeholders."""
    env = os.environ if env is None else env

    def replace_var(match: re.Match) -> str:
        var_name = match.group(1)
        if ":" in var_name:
            var_name, default_value = var_name.split(":", 1)
            return env.get(var_name, default_value)
        return env.get(var_name, match.group(0))

    return _PLACEHOLDER.sub(replace_var, content)


def _flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, f"{path}."))
        else:
            flat[path] = value
    return flat


def _to_env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def read_config_file(path: str | Path, env: Mapping[str, str] | None = None) -> dict[str, str]:
    """Read a YAML settings file into environment-style key/value pairs."""
    path = Path(path)
    try:
        content = path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    try:
        data = yaml.safe_load(substitute_env_vars(content, env)) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    values: dict[str, str] = {}
    for file_key, value in _flatten(data).items():
        env_key = FILE_KEYS.get(file_key)
        if env_key is None:
            logger.warning(f"Ignoring unknown setting '{file_key}' in {path}")
            continue
        if value is not None:
            values[env_key] = _to_env_value(value)
    logger.info(f"Loaded {len(values)} settings from {path}")
    return values


def load_settings(config_file: str | Path | None = None, env: Mapping[str, str] | None = None) -> IsolationSettings:
    """Build settings from the optional YAML file, overridden by the environment."""
    env = dict(os.environ if env is None else env)
    config_file = config_file or env.get("ISOLATION_CONFIG_FILE")
    if not config_file:
        return IsolationSettings.from_environment(env)

    merged = read_config_file(config_file, env)
    merged.update(env)
    return IsolationSettings.from_environment(merged)
