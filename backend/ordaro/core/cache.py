"""
Tenant-scoped response caching.
Uses Redis when REDIS_URL is configured and reachable, in-memory otherwise.
"""
from typing import Optional, Any
from datetime import datetime, timedelta
import json
import logging

import redis

from ordaro.core.config import settings

logger = logging.getLogger(__name__)


class SimpleCache:
    """In-memory cache with TTL support and size limit."""

    MAX_ENTRIES = 10000  # Prevent unbounded memory growth

    def __init__(self):
        self._cache: dict = {}
        self._expiry: dict = {}

    def _evict_expired(self):
        """Remove expired entries to reclaim memory."""
        now = datetime.now()
        expired = [k for k, exp in self._expiry.items() if exp <= now]
        for k in expired:
            self._cache.pop(k, None)
            self._expiry.pop(k, None)

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        if key in self._cache:
            if datetime.now() < self._expiry.get(key, datetime.min):
                return self._cache[key]
            self._cache.pop(key, None)
            self._expiry.pop(key, None)
        return None

    def set(self, key: str, value: Any, ttl_seconds: int = 300):
        """Set value in cache with TTL."""
        if len(self._cache) >= self.MAX_ENTRIES:
            self._evict_expired()
        if len(self._cache) >= self.MAX_ENTRIES:
            oldest_keys = sorted(self._expiry, key=self._expiry.get)[:100]
            for k in oldest_keys:
                self._cache.pop(k, None)
                self._expiry.pop(k, None)
        self._cache[key] = value
        self._expiry[key] = datetime.now() + timedelta(seconds=ttl_seconds)

    def delete(self, key: str):
        self._cache.pop(key, None)
        self._expiry.pop(key, None)

    def clear_prefix(self, prefix: str):
        """Clear all keys with given prefix."""
        keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
        for key in keys_to_delete:
            self.delete(key)

    def clear(self):
        self._cache.clear()
        self._expiry.clear()


class RedisCacheClient:
    """Redis-backed cache with in-memory fallback.

    Every Redis call falls back to the in-memory cache when the connection
    fails, so a Redis outage only costs cache hits.
    """

    def __init__(self):
        self._redis = None
        self._fallback = SimpleCache()
        self._generations: dict = {}

    def initialize(self, redis_url: str | None = None):
        if redis_url:
            try:
                self._redis = redis.from_url(
                    redis_url, socket_connect_timeout=2, decode_responses=True,
                )
                self._redis.ping()
                logger.info("Redis cache connected")
            except redis.RedisError as e:
                logger.warning(f"Redis unavailable, using memory cache: {e}")
                self._redis = None

    @property
    def backend(self) -> str:
        return "redis" if self._redis else "memory"

    def get(self, key: str) -> Any | None:
        try:
            if self._redis:
                val = self._redis.get(key)
                return json.loads(val) if val else None
        except redis.RedisError as e:
            logger.warning(f"Redis get failed for {key}, using memory cache: {e}")
        return self._fallback.get(key)

    def set(self, key: str, value: Any, ttl_seconds: int | None = None):
        ttl = ttl_seconds or settings.cache_ttl_seconds
        # Round-trip through JSON so both backends hand back the same shapes
        serialized = json.dumps(value, default=str)
        try:
            if self._redis:
                self._redis.setex(key, ttl, serialized)
                return
        except redis.RedisError as e:
            logger.warning(f"Redis set failed for {key}, using memory cache: {e}")
        self._fallback.set(key, json.loads(serialized), ttl)

    def delete(self, key: str):
        try:
            if self._redis:
                self._redis.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
        self._fallback.delete(key)

    def invalidate_pattern(self, pattern: str):
        try:
            if self._redis:
                cursor = 0
                while True:
                    cursor, keys = self._redis.scan(cursor, match=pattern, count=100)
                    if keys:
                        self._redis.delete(*keys)
                    if cursor == 0:
                        break
        except redis.RedisError as e:
            logger.warning(f"Redis invalidation failed for {pattern}: {e}")
        # Entries written while Redis was down live in memory
        self._fallback.clear_prefix(pattern.replace("*", ""))

    # ===== TENANT GENERATIONS =====

    def generation(self, tenant_id: str) -> int:
        """Counter bumped by every invalidation of the tenant."""
        try:
            if self._redis:
                return int(self._redis.get(f"{CacheKeys.GENERATION}:{tenant_id}") or 0)
        except redis.RedisError as e:
            logger.warning(f"Redis generation read failed for {tenant_id}: {e}")
        return self._generations.get(tenant_id, 0)

    def _bump_generation(self, tenant_id: str):
        try:
            if self._redis:
                self._redis.incr(f"{CacheKeys.GENERATION}:{tenant_id}")
        except redis.RedisError as e:
            logger.warning(f"Redis generation bump failed for {tenant_id}: {e}")
        self._generations[tenant_id] = self._generations.get(tenant_id, 0) + 1

    def invalidate_organization(self, tenant_id: str):
        """Drop every cached response for one tenant."""
        self._bump_generation(tenant_id)
        self.invalidate_pattern(f"{CacheKeys.ORG}:{tenant_id}:*")

    def set_for_organization(
        self, tenant_id: str, key: str, value: Any, generation: int, ttl_seconds: int | None = None,
    ) -> bool:
        """
        Cache a tenant read taken at ``generation``.
        Skipped if the tenant was invalidated while the read ran; an
        invalidation racing the write itself removes the entry again.
        """
        if self.generation(tenant_id) != generation:
            return False
        self.set(key, value, ttl_seconds)
        if self.generation(tenant_id) != generation:
            self.delete(key)
            return False
        return True


redis_cache = RedisCacheClient()


def org_cache_key(tenant_id: str, *parts: Any) -> str:
    """Build a key that invalidate_organization() will sweep."""
    return ":".join([CacheKeys.ORG, str(tenant_id), *(str(p) for p in parts)])


class CacheKeys:
    ORG = "org"
    STOCK = "stock"
    ALERTS = "alerts"
    GENERATION = "orggen"
