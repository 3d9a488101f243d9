# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Isolated cache backends and the routing cache manager."""

from .backends import (
    CacheBackend,
    LocalCacheBackend,
    NamedCache,
    RedisCacheBackend,
    create_cache_backend,
)
from .config import CacheBackendConfig, CacheConfig
from .router import RoutingCacheManager

__all__ = [
    "CacheBackend",
    "CacheBackendConfig",
    "CacheConfig",
    "LocalCacheBackend",
    "NamedCache",
    "RedisCacheBackend",
    "RoutingCacheManager",
    "create_cache_backend",
]
