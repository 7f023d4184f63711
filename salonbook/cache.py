"""
Redis caching for derived scheduling views
Cache failures never affect correctness: reads degrade to misses, writes to no-ops
"""

import enum
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

import redis

from .shared.result import Err, Ok, Result

logger = logging.getLogger(__name__)

CACHE_ERRORS = (redis.RedisError, ValueError, TypeError)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class CacheFamily(str, enum.Enum):
    APPOINTMENT = "appointment"
    SHIFT = "shift"
    MEMBER = "member"
    SERVICE = "service"
    CATEGORY = "category"
    CLIENT = "client"


class CacheTTL(enum.IntEnum):
    """TTL tiers in seconds, by how quickly the view goes stale"""

    DETAIL = 3600  # identity / detail lookups
    LIST = 1800  # list and aggregate views
    AVAILABILITY = 900
    SEARCH = 300  # free-text search


class CacheStatus(str, enum.Enum):
    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


@dataclass(frozen=True)
class CacheLookup:
    status: CacheStatus
    value: Any = None
    error: Optional[Exception] = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT


MISS = CacheLookup(CacheStatus.MISS)


def escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so ids match literally"""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


class Cache:
    """Redis cache wrapper with JSON serialization.

    The Redis client is handed in by the owner (see ``SchedulingEngine``);
    ``None`` runs the cache disabled, where every read is a miss.
    """

    def __init__(self, redis_client: Optional[redis.Redis]):
        self.redis_client = redis_client

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    def get(self, key: str) -> CacheLookup:
        """Get value from cache"""
        if not self.enabled:
            return MISS

        try:
            value = self.redis_client.get(key)
            if value is None:
                logger.debug(f"❌ Cache MISS: {key}")
                return MISS
            logger.debug(f"✅ Cache HIT: {key}")
            return CacheLookup(CacheStatus.HIT, json.loads(value))
        except CACHE_ERRORS as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return CacheLookup(CacheStatus.ERROR, error=e)

    def set(self, key: str, value: Any, ttl: int = CacheTTL.DETAIL) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        if not self.enabled:
            return False

        try:
            serialized = json.dumps(value)
            self.redis_client.setex(key, int(ttl), serialized)
            logger.debug(f"✅ Cache SET: {key} (TTL: {int(ttl)}s)")
            return True
        except CACHE_ERRORS as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete value from cache"""
        if not self.enabled:
            return False

        try:
            self.redis_client.delete(key)
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except CACHE_ERRORS as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False

    def invalidate_pattern(self, pattern: str) -> Result:
        """Delete all keys matching pattern (e.g., 'appointment:org_1:*')"""
        if not self.enabled:
            return Ok(0)

        try:
            deleted = 0
            batch = []
            for key in self.redis_client.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    deleted += self.redis_client.delete(*batch)
                    batch = []
            if batch:
                deleted += self.redis_client.delete(*batch)
            logger.debug(f"✅ Cache DELETE pattern: {pattern} ({deleted} keys)")
            return Ok(deleted)
        except CACHE_ERRORS as e:
            logger.error(f"❌ Cache delete pattern error for {pattern}: {e}")
            return Err(e)

    def health_check(self) -> dict:
        if not self.enabled:
            return {"status": "disabled", "connected": False}
        try:
            connected = bool(self.redis_client.ping())
        except CACHE_ERRORS as e:
            logger.error(f"Cache health check failed: {e}")
            connected = False
        return {"status": "healthy" if connected else "unhealthy", "connected": connected}

    def get_stats(self) -> dict:
        """Get cache statistics"""
        if not self.enabled:
            return {"available": False}

        try:
            info = self.redis_client.info()
            hits = info.get("keyspace_hits", 0)
            misses = info.get("keyspace_misses", 0)
            return {
                "available": True,
                "used_memory": info.get("used_memory_human"),
                "connected_clients": info.get("connected_clients"),
                "keyspace_hits": hits,
                "keyspace_misses": misses,
                "hit_rate": (hits / max(hits + misses, 1)) * 100,
            }
        except CACHE_ERRORS as e:
            logger.error(f"❌ Failed to get cache stats: {e}")
            return {"available": False, "error": str(e)}

    def close(self) -> None:
        if self.redis_client is None:
            return
        try:
            self.redis_client.close()
        except redis.RedisError as e:
            logger.warning(f"⚠️ Error closing Redis client: {e}")
        self.redis_client = None


class CacheCoordinator:
    """Namespaces keys per tenant and family, and drops whole families on mutation.

    Keys look like ``family:tenantId:discriminator``. Invalidation is
    coarse: one mutation drops every key of the family for that tenant.
    It runs after the write commits and is best-effort; a crash in
    between leaves entries that expire with their TTL.
    """

    def __init__(self, cache: Cache):
        self.cache = cache

    @staticmethod
    def key(family: CacheFamily, tenant_id: str, *parts: Any) -> str:
        return ":".join([CacheFamily(family).value, str(tenant_id), *(str(p) for p in parts)])

    def get(self, key: str) -> CacheLookup:
        return self.cache.get(key)

    def set(self, key: str, value: Any, ttl: int) -> bool:
        return self.cache.set(key, value, ttl)

    def get_or_compute(
        self,
        key: str,
        ttl: int,
        compute: Callable[[], Any],
        encode: Callable[[Any], Any] = lambda v: v,
        decode: Callable[[Any], Any] = lambda v: v,
    ) -> Any:
        """Serve from cache, otherwise compute, store and return.

        ``encode``/``decode`` convert between the returned value and its
        JSON form, so both paths hand back equal objects.
        """
        lookup = self.cache.get(key)
        if lookup.hit:
            try:
                return decode(lookup.value)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"⚠️ Discarding undecodable cache entry {key}: {e}")
                self.cache.delete(key)

        result = compute()
        if result is not None:
            self.cache.set(key, encode(result), ttl)
        return result

    def invalidate(self, tenant_id: str, *families: CacheFamily) -> dict[str, Result]:
        """Drop every cached entry under ``family:tenantId:*`` for each family"""
        results = {}
        for family in families:
            family = CacheFamily(family)
            pattern = f"{family.value}:{escape_glob(str(tenant_id))}:*"
            outcome = self.cache.invalidate_pattern(pattern)
            if not outcome.ok:
                logger.warning(
                    f"⚠️ Invalidation of {pattern} failed; entries expire with their TTL"
                )
            results[family.value] = outcome
        return results
