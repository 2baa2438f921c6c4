"""Process-wide Redis client for the short-link cache.

Flow Diagram — get_redis()
==========================
::
    ┌─────────────┐
    │ get_redis()  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check global │
    │ client var   │
    └──────┬──────┘
    EXISTS?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Redis   │  │ existing│
│ client  │  │ client  │
└─────────┘  └─────────┘

Key Behaviours
===============
- Redis client is created lazily on first access and reused by every request.
- Short connect/socket timeouts: an unreachable Redis turns into a fast error
  that ``URLCache`` treats as a miss, never a hung redirect.
- UTF-8 encoding with decode_responses for string operations.

Functions:
    create_redis_client():  Build a client from configuration.
    get_redis():  Shared client accessor.
    close_redis():  Cleanup function for shutdown.
"""

import redis.asyncio as redis

from bitlytics.config import get_settings

__all__ = ["close_redis", "create_redis_client", "get_redis"]

settings = get_settings()

redis_client: redis.Redis | None = None


def create_redis_client(url: str | None = None) -> redis.Redis:
    return redis.from_url(
        url or settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )


async def get_redis() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = create_redis_client()
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
