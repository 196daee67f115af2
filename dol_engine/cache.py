"""
Result cache for date-of-loss inference.

Entries are keyed by a coarse fingerprint: coordinates rounded to two
decimals (~1 km), the day-granularity window and a hash of the scoring
parameters. Nearby properties share entries, and a tuning change never
serves results computed under old constants.

Cache problems never fail a request: a broken store reads as a miss and a
failed write is logged and skipped.
"""
import logging
import time
from typing import Optional, Protocol

import redis.asyncio as aioredis
from cachetools import TLRUCache
from redis.exceptions import RedisError

from .exceptions import CacheError
from .models.results import DateWindow, DOLResult, PropertyContext
from .scoring import ScoringParameters

logger = logging.getLogger(__name__)

KEY_PREFIX = "dol:v1"


class CacheStore(Protocol):
    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None:
        ...


def _ttu(_key, value, now):
    return now + value[1]


class InMemoryCacheStore:
    """Process-local store with per-entry TTL (cachetools TLRUCache)"""

    def __init__(self, max_entries: int = 1024, timer=time.monotonic):
        self._cache = TLRUCache(maxsize=max_entries, ttu=_ttu, timer=timer)

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._cache.get(key)
        return entry[0] if entry is not None else None

    async def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        self._cache[key] = (value, ttl_seconds)

    def __len__(self) -> int:
        return len(self._cache)

    async def close(self) -> None:
        self._cache.clear()


class RedisCacheStore:
    """
    Redis-backed store shared across workers.

    Connection is lazy and tested on first use. In production a Redis failure
    raises CacheError; in development the store falls back to an in-memory
    store (not shared between processes).
    """

    def __init__(self, redis_url: str, app_env: str = "development", fallback_max_entries: int = 1024):
        self.redis_url = redis_url
        self.app_env = app_env
        self._client = None
        self._connection_tested = False
        self._fallback: Optional[InMemoryCacheStore] = None
        self._fallback_max_entries = fallback_max_entries

    @property
    def using_fallback(self) -> bool:
        return self._fallback is not None

    def _display_url(self) -> str:
        return self.redis_url.split('@')[-1] if '@' in self.redis_url else self.redis_url

    async def _get_client(self):
        if self._fallback is not None:
            return None
        if self._client is None:
            self._client = aioredis.from_url(
                self.redis_url,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=True,
            )
        if not self._connection_tested:
            try:
                await self._client.ping()
                self._connection_tested = True
                logger.info(f"Redis connection established: {self._display_url()}")
            except (RedisError, OSError) as e:
                logger.error(f"Redis connection failed: {e}")
                if self.app_env == "production":
                    raise CacheError(f"Redis connection failed in production: {e}") from e
                logger.warning("Falling back to in-memory result cache (NOT process-safe) - DEVELOPMENT ONLY")
                self._fallback = InMemoryCacheStore(self._fallback_max_entries)
                return None
        return self._client

    async def get(self, key: str) -> Optional[bytes]:
        client = await self._get_client()
        if client is None:
            return await self._fallback.get(key)
        try:
            return await client.get(key)
        except (RedisError, OSError) as e:
            raise CacheError(f"Redis get failed for {key}: {e}") from e

    async def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        client = await self._get_client()
        if client is None:
            await self._fallback.set_with_ttl(key, value, ttl_seconds)
            return
        try:
            await client.set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as e:
            raise CacheError(f"Redis set failed for {key}: {e}") from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _coarse(value: float) -> str:
    # + 0.0 folds -0.0 into 0.0
    return f"{round(float(value), 2) + 0.0:.2f}"


def cache_key(prop: PropertyContext, window: DateWindow, params: ScoringParameters) -> str:
    return (
        f"{KEY_PREFIX}:{_coarse(prop.lat)}:{_coarse(prop.lon)}:"
        f"{window.start.isoformat()}:{window.end.isoformat()}:{params.fingerprint()}"
    )


class DOLResultCache:
    """Read-through / write-through cache of DOLResults over a CacheStore"""

    def __init__(self, store: CacheStore, ttl_seconds: int = 21600, degraded_ttl_seconds: int = 300):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.degraded_ttl_seconds = degraded_ttl_seconds
        self.stats = {"hits": 0, "misses": 0, "errors": 0, "writes": 0}

    async def get(self, key: str) -> Optional[DOLResult]:
        """Fresh DOLResult decoded from the store, or None on miss or error."""
        try:
            payload = await self.store.get(key)
        except CacheError as e:
            self.stats["errors"] += 1
            logger.warning(f"Cache read failed, treating as miss: {e}")
            return None

        if payload is None:
            self.stats["misses"] += 1
            return None

        try:
            result = DOLResult.from_json(payload)
        except (ValueError, KeyError, TypeError) as e:
            self.stats["errors"] += 1
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None

        self.stats["hits"] += 1
        return result

    async def put(self, key: str, result: DOLResult) -> None:
        ttl = self.degraded_ttl_seconds if result.is_degraded else self.ttl_seconds
        try:
            await self.store.set_with_ttl(key, result.to_json().encode("utf-8"), ttl)
        except CacheError as e:
            self.stats["errors"] += 1
            logger.warning(f"Cache write failed for {key}: {e}")
            return
        self.stats["writes"] += 1
        logger.debug(f"Cached result under {key} for {ttl}s")

    async def close(self) -> None:
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()
