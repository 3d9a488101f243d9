# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Cache backend configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass
class CacheBackendConfig:
    """Credentials, key namespace and entry lifetime for one cache backend."""

    name: str
    key_prefix: str
    ttl_seconds: int
    username: str | None = None
    password: str | None = None

    @classmethod
    def from_environment(cls, name: str, env: Mapping[str, str] | None = None, **defaults) -> CacheBackendConfig:
        env = os.environ if env is None else env
        prefix = f"CACHE_{name.upper()}_"
        return cls(
            name=name,
            key_prefix=env.get(f"{prefix}KEY_PREFIX", defaults.get("key_prefix", f"{name}:")),
            ttl_seconds=int(env.get(f"{prefix}TTL_SECONDS", defaults.get("ttl_seconds", 3600))),
            username=env.get(f"{prefix}USERNAME") or None,
            password=env.get(f"{prefix}PASSWORD") or None,
        )


@dataclass
class CacheConfig:
    """Configuration of the two isolated cache backends."""

    backend: str = "redis"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_max_connections: int = 20
    redis_socket_timeout: float = 5.0
    real: CacheBackendConfig = field(default_factory=lambda: CacheBackendConfig("real", "real:", 3600))
    test: CacheBackendConfig = field(default_factory=lambda: CacheBackendConfig("test", "test:", 600))

    @classmethod
    def from_environment(cls, env: Mapping[str, str] | None = None) -> CacheConfig:
        env = os.environ if env is None else env
        return cls(
            backend=env.get("CACHE_BACKEND", "redis").lower(),
            redis_host=env.get("REDIS_HOST", "localhost"),
            redis_port=int(env.get("REDIS_PORT", "6379")),
            redis_db=int(env.get("REDIS_DB", "0")),
            redis_max_connections=int(env.get("REDIS_MAX_CONNECTIONS", "20")),
            redis_socket_timeout=float(env.get("REDIS_SOCKET_TIMEOUT", "5.0")),
            real=CacheBackendConfig.from_environment("real", env, key_prefix="real:", ttl_seconds=3600),
            test=CacheBackendConfig.from_environment("test", env, key_prefix="test:", ttl_seconds=600),
        )
