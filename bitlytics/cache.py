"""Redis-backed cache for short-code lookups and ephemeral click counters.

The cache is a performance hint: every method swallows Redis failures, logs
them, and answers as if the key were absent. Callers never need a try/except
around it, and an unreachable Redis degrades resolution to store lookups.

Key Namespaces
==============
::
    url:{code}          JSON CachedLink, expires after the TTL
    clicks:{code}       INCR counter, no expiry managed here
    user:{owner}:urls   SET of codes cached for an owner
    analytics:{key}     owned by the security collaborator, never written here

Flow Diagram — get()
====================
::
    ┌─────────────┐
    │ GET url:code │
    └──────┬──────┘
           ▼
    ┌─────────────┐   RedisError / OSError   ┌──────────┐
    │ Redis reply  │ ───────────────────────▶ │ log, None │
    └──────┬──────┘                           └──────────┘
      None │ payload
    ┌──────┴──────┐
    ▼             ▼
 ┌──────┐   ┌────────────┐  undecodable  ┌──────────┐
 │ None │   │ CachedLink │ ────────────▶ │ log, None │
 └──────┘   └────────────┘               └──────────┘

Classes:
    URLCache:  Soft-failing wrapper around a ``redis.asyncio.Redis`` client.
"""

import logging

import redis.asyncio as redis
from prometheus_client import Counter
from pydantic import ValidationError
from redis.exceptions import RedisError

from bitlytics.schemas import CacheHealth, CachedLink

__all__ = [
    "ANALYTICS_KEY_PREFIX",
    "CLICKS_KEY_PREFIX",
    "DEFAULT_CACHE_TTL_SECONDS",
    "URLCache",
    "URL_KEY_PREFIX",
    "clicks_key",
    "owner_key",
    "url_key",
]

DEFAULT_CACHE_TTL_SECONDS = 3600

URL_KEY_PREFIX = "url"
CLICKS_KEY_PREFIX = "clicks"
OWNER_KEY_PREFIX = "user"
ANALYTICS_KEY_PREFIX = "analytics"

# Connection, timeout and protocol errors all count as "cache unavailable".
CACHE_FAILURES = (RedisError, OSError)

REDIS_OPERATIONS_TOTAL = Counter(
    "bitlytics_redis_operations_total",
    "Redis operations issued by the link cache",
    ["operation"],
)
REDIS_FAILURES_TOTAL = Counter(
    "bitlytics_redis_failures_total",
    "Redis operations that failed and were treated as a cache miss",
    ["operation"],
)


def url_key(code: str) -> str:
    return f"{URL_KEY_PREFIX}:{code}"


def clicks_key(code: str) -> str:
    return f"{CLICKS_KEY_PREFIX}:{code}"


def owner_key(owner: str) -> str:
    return f"{OWNER_KEY_PREFIX}:{owner}:urls"


class URLCache:
    """Best-effort cache of ``code → destination`` mappings and click counters."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        default_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        assert default_ttl > 0, f"default_ttl must be positive, got {default_ttl!r}"
        self._client = client
        self._default_ttl = default_ttl
        self._logger = logger or logging.getLogger("bitlytics.cache")

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    async def put(
        self,
        code: str,
        destination: str,
        owner: str | None = None,
        ttl_seconds: int | None = None,
    ) -> bool:
        """Store the mapping for ``code``; returns False if Redis refused."""
        payload = CachedLink(destination=destination, owner=owner)
        try:
            await self._client.setex(
                url_key(code),
                ttl_seconds or self._default_ttl,
                payload.model_dump_json(by_alias=True),
            )
            REDIS_OPERATIONS_TOTAL.labels(operation="setex").inc()
            if owner:
                await self._client.sadd(owner_key(owner), code)
                REDIS_OPERATIONS_TOTAL.labels(operation="sadd").inc()
        except CACHE_FAILURES as exc:
            REDIS_FAILURES_TOTAL.labels(operation="put").inc()
            self._logger.warning(f"Cache put failed for {code}: {exc}")
            return False
        return True

    async def get(self, code: str) -> CachedLink | None:
        try:
            raw = await self._client.get(url_key(code))
            REDIS_OPERATIONS_TOTAL.labels(operation="get").inc()
        except CACHE_FAILURES as exc:
            REDIS_FAILURES_TOTAL.labels(operation="get").inc()
            self._logger.warning(f"Cache get failed for {code}, treating as miss: {exc}")
            return None

        if raw is None:
            return None

        try:
            return CachedLink.model_validate_json(raw)
        except ValidationError as exc:
            self._logger.error(f"Cache deserialization error for {code}: {exc}")
            return None

    async def increment_clicks(self, code: str) -> int:
        try:
            count = await self._client.incr(clicks_key(code))
            REDIS_OPERATIONS_TOTAL.labels(operation="incr").inc()
        except CACHE_FAILURES as exc:
            REDIS_FAILURES_TOTAL.labels(operation="incr").inc()
            self._logger.warning(f"Cache click increment failed for {code}: {exc}")
            return 0
        return int(count)

    async def get_click_count(self, code: str) -> int:
        try:
            value = await self._client.get(clicks_key(code))
            REDIS_OPERATIONS_TOTAL.labels(operation="get").inc()
        except CACHE_FAILURES as exc:
            REDIS_FAILURES_TOTAL.labels(operation="get_clicks").inc()
            self._logger.warning(f"Cache click count read failed for {code}: {exc}")
            return 0
        return int(value) if value else 0

    async def invalidate(self, code: str) -> bool:
        try:
            await self._client.delete(url_key(code), clicks_key(code))
            REDIS_OPERATIONS_TOTAL.labels(operation="delete").inc()
        except CACHE_FAILURES as exc:
            REDIS_FAILURES_TOTAL.labels(operation="invalidate").inc()
            self._logger.warning(f"Cache invalidation failed for {code}: {exc}")
            return False
        return True

    async def health_status(self) -> CacheHealth:
        try:
            pong = await self._client.ping()
            info = await self._client.info("memory")
            key_count = await self._client.dbsize()
        except CACHE_FAILURES as exc:
            self._logger.error(f"Cache health check failed: {exc}")
            return CacheHealth(connected=False)

        memory = info.get("used_memory_human", "unknown") if isinstance(info, dict) else "unknown"
        return CacheHealth(connected=bool(pong), memory_usage=str(memory), key_count=int(key_count))
