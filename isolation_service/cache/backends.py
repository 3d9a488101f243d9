# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Named-cache backends.

A backend is a cache manager: it hands out named caches that all live inside
one key namespace (``real:`` or ``test:``) with one entry lifetime. Keys are
laid out as ``<prefix><cache name>::<key>``. ``None`` values are never cached.
"""

from __future__ import annotations

import builtins
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .config import CacheBackendConfig, CacheConfig

logger = logging.getLogger(__name__)


class NamedCache(ABC):
    """One logical cache (for example ``users``) inside a backend namespace."""

    def __init__(self, name: str, key_prefix: str, ttl_seconds: int):
        self.name = name
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    def make_key(self, key: Any) -> str:
        return f"{self.key_prefix}{self.name}::{key}"

    @abstractmethod
    async def get(self, key: Any) -> Any | None:
        pass

    @abstractmethod
    async def put(self, key: Any, value: Any) -> bool:
        pass

    @abstractmethod
    async def evict(self, key: Any) -> bool:
        pass

    @abstractmethod
    async def clear(self) -> int:
        """Remove every entry of this cache; returns how many were removed."""
        pass


class CacheBackend(ABC):
    """Cache manager for one isolated namespace."""

    def __init__(self, config: CacheBackendConfig):
        self.config = config
        self._caches: dict[str, NamedCache] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def key_prefix(self) -> str:
        return self.config.key_prefix

    @abstractmethod
    def _create_cache(self, name: str) -> NamedCache:
        pass

    def get_cache(self, name: str) -> NamedCache:
        """Get or lazily create the named cache."""
        with self._lock:
            cache = self._caches.get(name)
            if cache is None:
                cache = self._create_cache(name)
                self._caches[name] = cache
                logger.debug(f"Created cache '{name}' in {self.name} backend ({self.key_prefix})")
            return cache

    def get_cache_names(self) -> builtins.set[str]:
        with self._lock:
            return set(self._caches)

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass


def _serialize_value(value: Any) -> str:
    return json.dumps(value, default=str)


def _deserialize_value(data: str) -> Any:
    try:
        return json.loads(data)
    except (json.JSONDecodeError, TypeError):
        return data


class RedisNamedCache(NamedCache):
    def __init__(self, name: str, key_prefix: str, ttl_seconds: int, redis_client):
        super().__init__(name, key_prefix, ttl_seconds)
        self._redis = redis_client

    async def get(self, key: Any) -> Any | None:
        try:
            data = await self._redis.get(self.make_key(key))
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning(f"Redis get failed for {self.make_key(key)}, treating as miss: {e}")
            return None

        if data is None:
            return None
        return _deserialize_value(data)

    async def put(self, key: Any, value: Any) -> bool:
        if value is None:
            return False

        try:
            await self._redis.set(self.make_key(key), _serialize_value(value), ex=self.ttl_seconds)
            return True
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning(f"Redis set failed for {self.make_key(key)}: {e}")
            return False

    async def evict(self, key: Any) -> bool:
        return await self._redis.delete(self.make_key(key)) > 0

    async def clear(self) -> int:
        removed = 0
        async for redis_key in self._redis.scan_iter(match=f"{self.key_prefix}{self.name}::*"):
            removed += await self._redis.delete(redis_key)
        return removed


class RedisCacheBackend(CacheBackend):
    """Redis backend authenticated as its own ACL user.

    The ACL user is expected to be limited to ``<prefix>*`` keys, so even a
    routing bug could not read the other namespace.
    """

    def __init__(
        self,
        config: CacheBackendConfig,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        max_connections: int = 20,
        socket_timeout: float = 5.0,
        redis_client=None,
    ):
        super().__init__(config)
        self.host = host
        self.port = port
        self.db = db
        self.max_connections = max_connections
        self.socket_timeout = socket_timeout
        self._redis = redis_client

    @classmethod
    def from_config(cls, cache_config: CacheConfig, backend_config: CacheBackendConfig) -> RedisCacheBackend:
        return cls(
            backend_config,
            host=cache_config.redis_host,
            port=cache_config.redis_port,
            db=cache_config.redis_db,
            max_connections=cache_config.redis_max_connections,
            socket_timeout=cache_config.redis_socket_timeout,
        )

    @property
    def redis(self):
        if self._redis is None:
            import redis.asyncio as redis

            self._redis = redis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                username=self.config.username,
                password=self.config.password,
                max_connections=self.max_connections,
                socket_timeout=self.socket_timeout,
                decode_responses=True,
            )
        return self._redis

    def _create_cache(self, name: str) -> NamedCache:
        return RedisNamedCache(name, self.key_prefix, self.config.ttl_seconds, self.redis)

    async def health_check(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.error(f"Redis health check failed ({self.name}): {e}")
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info(f"Redis cache backend closed ({self.name})")


@dataclass
class CacheEntry:
    """Cache entry with absolute expiry."""

    value: Any
    expires_at: float

    def is_expired(self) -> bool:
        return time.time() > self.expires_at


class LocalNamedCache(NamedCache):
    def __init__(self, name: str, key_prefix: str, ttl_seconds: int, store: dict[str, CacheEntry], lock: threading.RLock):
        super().__init__(name, key_prefix, ttl_seconds)
        self._store = store
        self._lock = lock

    async def get(self, key: Any) -> Any | None:
        redis_key = self.make_key(key)
        with self._lock:
            entry = self._store.get(redis_key)
            if entry is None:
                return None
            if entry.is_expired():
                self._store.pop(redis_key, None)
                return None
            return entry.value

    async def put(self, key: Any, value: Any) -> bool:
        if value is None:
            return False
        # Round-trip through JSON so local and Redis backends return the same shapes
        value = _deserialize_value(_serialize_value(value))
        with self._lock:
            self._store[self.make_key(key)] = CacheEntry(value, time.time() + self.ttl_seconds)
        return True

    async def evict(self, key: Any) -> bool:
        with self._lock:
            return self._store.pop(self.make_key(key), None) is not None

    async def clear(self) -> int:
        prefix = f"{self.key_prefix}{self.name}::"
        with self._lock:
            doomed = [k for k in self._store if k.startswith(prefix)]
            for k in doomed:
                del self._store[k]
        return len(doomed)


class LocalCacheBackend(CacheBackend):
    """In-process backend with the same namespace and TTL semantics as Redis."""

    def __init__(self, config: CacheBackendConfig):
        super().__init__(config)
        self._store: dict[str, CacheEntry] = {}
        self._store_lock = threading.RLock()

    def _create_cache(self, name: str) -> NamedCache:
        return LocalNamedCache(name, self.key_prefix, self.config.ttl_seconds, self._store, self._store_lock)

    def keys(self) -> builtins.set[str]:
        """All non-expired raw keys, prefix included."""
        now = time.time()
        with self._store_lock:
            return {k for k, entry in self._store.items() if now <= entry.expires_at}

    async def close(self) -> None:
        with self._store_lock:
            self._store.clear()


def create_cache_backend(cache_config: CacheConfig, backend_config: CacheBackendConfig) -> CacheBackend:
    if cache_config.backend == "local":
        return LocalCacheBackend(backend_config)
    return RedisCacheBackend.from_config(cache_config, backend_config)
