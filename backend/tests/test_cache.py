"""Tests for the tenant-scoped response cache."""

import logging

import redis

from ordaro.core.cache import CacheKeys, RedisCacheClient, org_cache_key


class UnreachableRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("Connection refused")
        return fail


class TestRedisOutage:
    def test_calls_fall_back_to_memory(self, caplog):
        cache = RedisCacheClient()
        cache._redis = UnreachableRedis()
        key = org_cache_key("org_a", CacheKeys.STOCK, 1)

        with caplog.at_level(logging.WARNING, logger="ordaro.core.cache"):
            cache.set(key, {"total_stock": "3"})
            assert cache.get(key) == {"total_stock": "3"}
            cache.delete(key)
            assert cache.get(key) is None

        assert "Redis set failed" in caplog.text

    def test_invalidation_clears_memory_entries(self):
        cache = RedisCacheClient()
        cache._redis = UnreachableRedis()
        key = org_cache_key("org_a", CacheKeys.ALERTS)
        cache.set(key, [])

        cache.invalidate_organization("org_a")

        assert cache.get(key) is None


class TestTenantGenerations:
    def test_invalidation_bumps_only_that_tenant(self):
        cache = RedisCacheClient()
        cache.invalidate_organization("org_a")

        assert cache.generation("org_a") == 1
        assert cache.generation("org_b") == 0

    def test_fill_from_a_current_read_is_kept(self):
        cache = RedisCacheClient()
        key = org_cache_key("org_a", CacheKeys.STOCK, 1)
        generation = cache.generation("org_a")

        assert cache.set_for_organization("org_a", key, {"total_stock": "10"}, generation) is True
        assert cache.get(key) == {"total_stock": "10"}

    def test_fill_from_an_invalidated_read_is_dropped(self):
        cache = RedisCacheClient()
        key = org_cache_key("org_a", CacheKeys.STOCK, 1)
        generation = cache.generation("org_a")
        cache.invalidate_organization("org_a")

        assert cache.set_for_organization("org_a", key, {"total_stock": "10"}, generation) is False
        assert cache.get(key) is None

    def test_other_tenants_invalidation_does_not_block_fill(self):
        cache = RedisCacheClient()
        key = org_cache_key("org_a", CacheKeys.ALERTS)
        generation = cache.generation("org_a")
        cache.invalidate_organization("org_b")

        assert cache.set_for_organization("org_a", key, [], generation) is True
