"""Tests for the routing cache manager and its backends."""

import asyncio
import time

import pytest
from redis.exceptions import NoPermissionError

from isolation_service.cache import (
    CacheBackendConfig,
    CacheConfig,
    LocalCacheBackend,
    RedisCacheBackend,
    RoutingCacheManager,
    create_cache_backend,
)
from isolation_service.errors import RouterConfigurationError
from isolation_service.traffic import TrafficClassification


@pytest.fixture
def local_backends():
    return (
        LocalCacheBackend(CacheBackendConfig("real", "real:", 3600)),
        LocalCacheBackend(CacheBackendConfig("test", "test:", 600)),
    )


@pytest.fixture
def local_caches(local_backends, context):
    real, test = local_backends
    return RoutingCacheManager(real, test, context)


class TestRoutingCacheManager:
    @pytest.mark.asyncio
    async def test_test_entries_use_test_namespace(self, local_caches, local_backends, context):
        real, test = local_backends

        with context.scope(TrafficClassification.for_test("run-1")):
            await local_caches.get_cache("users").put(1, {"id": 1})

        assert test.keys() == {"test:users::1"}
        assert real.keys() == set()

    @pytest.mark.asyncio
    async def test_entries_invisible_across_classifications(self, local_caches, context):
        with context.scope(TrafficClassification.for_test("run-1")):
            await local_caches.get_cache("users").put(1, {"id": 1, "username": "tester"})
            assert await local_caches.get_cache("users").get(1) == {"id": 1, "username": "tester"}

        assert await local_caches.get_cache("users").get(1) is None

    @pytest.mark.asyncio
    async def test_clear_only_affects_current_namespace(self, local_caches, local_backends, context):
        real, test = local_backends
        await local_caches.get_cache("users").put(1, {"id": 1})

        with context.scope(TrafficClassification.for_test("run-1")):
            await local_caches.get_cache("users").put(1, {"id": 1})
            assert await local_caches.get_cache("users").clear() == 1

        assert real.keys() == {"real:users::1"}
        assert test.keys() == set()

    @pytest.mark.asyncio
    async def test_evict_cannot_reach_other_namespace(self, local_caches, context):
        await local_caches.get_cache("users").put(7, {"id": 7})

        with context.scope(TrafficClassification.for_test("run-1")):
            assert await local_caches.get_cache("users").evict(7) is False

        assert await local_caches.get_cache("users").get(7) == {"id": 7}

    def test_cache_names_follow_selected_backend(self, local_caches, context):
        local_caches.get_cache("users")
        with context.scope(TrafficClassification.for_test("run-1")):
            local_caches.get_cache("sessions")
            assert local_caches.get_cache_names() == {"sessions"}

        assert local_caches.get_cache_names() == {"users"}

    @pytest.mark.asyncio
    async def test_concurrent_opposite_classifications(self, local_caches, local_backends, context):
        async def write_and_read(user_id):
            classification = (
                TrafficClassification.for_test(f"run-{user_id}") if user_id % 2 else TrafficClassification.production()
            )
            with context.scope(classification):
                await asyncio.sleep(0)
                await local_caches.get_cache("users").put(user_id, {"id": user_id, "is_test": classification.is_test})
                await asyncio.sleep(0)
                return await local_caches.get_cache("users").get(user_id)

        results = await asyncio.gather(*(write_and_read(i) for i in range(20)))

        assert [r["is_test"] for r in results] == [bool(i % 2) for i in range(20)]
        real, test = local_backends
        assert real.keys() == {f"real:users::{i}" for i in range(0, 20, 2)}
        assert test.keys() == {f"test:users::{i}" for i in range(1, 20, 2)}

    def test_requires_both_backends(self, local_backends, context):
        with pytest.raises(RouterConfigurationError):
            RoutingCacheManager(local_backends[0], None, context)

    @pytest.mark.parametrize("real_prefix,test_prefix", [("real:", "real:"), ("app:", "app:test:"), ("", "test:")])
    def test_overlapping_namespaces_are_fatal(self, real_prefix, test_prefix, context):
        with pytest.raises(RouterConfigurationError):
            RoutingCacheManager(
                LocalCacheBackend(CacheBackendConfig("real", real_prefix, 3600)),
                LocalCacheBackend(CacheBackendConfig("test", test_prefix, 600)),
                context,
            )


class TestLocalCacheBackend:
    @pytest.mark.asyncio
    async def test_none_is_never_cached(self):
        cache = LocalCacheBackend(CacheBackendConfig("real", "real:", 3600)).get_cache("users")

        assert await cache.put(1, None) is False
        assert await cache.get(1) is None

    @pytest.mark.asyncio
    async def test_entries_expire(self, monkeypatch):
        backend = LocalCacheBackend(CacheBackendConfig("test", "test:", 600))
        cache = backend.get_cache("users")
        await cache.put(1, {"id": 1})

        now = time.time()
        monkeypatch.setattr(time, "time", lambda: now + 601)

        assert await cache.get(1) is None


class TestRedisCacheBackend:
    @pytest.fixture
    def redis_caches(self, broker, context):
        broker.add_user("app_real_user", "real:*")
        broker.add_user("app_test_user", "test:*")
        real = RedisCacheBackend(
            CacheBackendConfig("real", "real:", 3600, "app_real_user"), redis_client=broker.client("app_real_user")
        )
        test = RedisCacheBackend(
            CacheBackendConfig("test", "test:", 600, "app_test_user"), redis_client=broker.client("app_test_user")
        )
        return RoutingCacheManager(real, test, context)

    @pytest.mark.asyncio
    async def test_keys_are_prefixed_per_backend(self, redis_caches, broker, context):
        await redis_caches.get_cache("users").put(1, {"id": 1})
        with context.scope(TrafficClassification.for_test("run-1")):
            await redis_caches.get_cache("users").put(2, {"id": 2})

        assert set(broker.kv) == {"real:users::1", "test:users::2"}

    @pytest.mark.asyncio
    async def test_round_trip(self, redis_caches, context):
        with context.scope(TrafficClassification.for_test("run-1")):
            await redis_caches.get_cache("users").put(2, {"id": 2, "email": "t@example.com"})
            assert await redis_caches.get_cache("users").get(2) == {"id": 2, "email": "t@example.com"}

        assert await redis_caches.get_cache("users").get(2) is None

    @pytest.mark.asyncio
    async def test_test_identity_cannot_touch_real_keys(self, broker):
        broker.add_user("app_test_user", "test:*")
        misrouted = RedisCacheBackend(
            CacheBackendConfig("test", "real:", 600, "app_test_user"), redis_client=broker.client("app_test_user")
        )

        with pytest.raises(NoPermissionError):
            await misrouted.get_cache("users").get(1)

    @pytest.mark.asyncio
    async def test_clear_scans_own_prefix(self, redis_caches, broker, context):
        await redis_caches.get_cache("users").put(1, {"id": 1})
        with context.scope(TrafficClassification.for_test("run-1")):
            await redis_caches.get_cache("users").put(1, {"id": 1})
            await redis_caches.get_cache("users").put(2, {"id": 2})
            assert await redis_caches.get_cache("users").clear() == 2

        assert set(broker.kv) == {"real:users::1"}

    @pytest.mark.asyncio
    async def test_health_check(self, redis_caches):
        assert await redis_caches.health_check() == {"REAL": True, "TEST": True}


def test_create_cache_backend_by_type():
    local = CacheConfig(backend="local")
    redis = CacheConfig(backend="redis")

    assert isinstance(create_cache_backend(local, local.real), LocalCacheBackend)
    backend = create_cache_backend(redis, redis.test)
    assert isinstance(backend, RedisCacheBackend)
    assert backend.key_prefix == "test:"
    assert backend.config.ttl_seconds == 600


def test_cache_config_from_environment():
    config = CacheConfig.from_environment(
        {
            "CACHE_BACKEND": "LOCAL",
            "REDIS_HOST": "cache.internal",
            "CACHE_TEST_TTL_SECONDS": "60",
            "CACHE_TEST_USERNAME": "app_test_user",
        }
    )

    assert config.backend == "local"
    assert config.redis_host == "cache.internal"
    assert config.real.key_prefix == "real:"
    assert config.real.ttl_seconds == 3600
    assert config.test.ttl_seconds == 60
    assert config.test.username == "app_test_user"
