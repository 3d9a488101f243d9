# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Cache router: route named-cache lookups to the real or test backend.

Callers ask for a cache by logical name only. Each call resolves the backend
from the current classification and then delegates, so no call ever holds
both backends. Key prefixes and lifetimes belong to the backends; the router
neither adds nor strips them.
"""

from __future__ import annotations

import builtins
import logging

from ..errors import RouterConfigurationError
from ..routing import BackendKey, BackendRouter
from ..traffic.context import ClassificationContext
from .backends import CacheBackend, NamedCache

logger = logging.getLogger(__name__)


class RoutingCacheManager:
    def __init__(self, real: CacheBackend, test: CacheBackend, context: ClassificationContext):
        self.router: BackendRouter[CacheBackend] = BackendRouter("cache", real, test, context)
        real_prefix, test_prefix = real.key_prefix, test.key_prefix
        if real_prefix.startswith(test_prefix) or test_prefix.startswith(real_prefix):
            raise RouterConfigurationError(
                f"cache router needs disjoint key namespaces, got '{real_prefix}' and '{test_prefix}'"
            )

    def get_cache(self, name: str) -> NamedCache:
        backend = self.router.select()
        return backend.get_cache(name)

    def get_cache_names(self) -> builtins.set[str]:
        return self.router.select().get_cache_names()

    async def health_check(self) -> dict[str, bool]:
        return {key.value: await self.router.backend_for(key).health_check() for key in BackendKey}

    async def close(self) -> None:
        for key in BackendKey:
            await self.router.backend_for(key).close()
