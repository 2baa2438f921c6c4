"""Pydantic schemas for request/response validation and cache payloads.

Schema Hierarchy
=================
::
    LinkCreate (Input)
    ├─ url: str (normalized later by bitlytics.normalizer)
    ├─ custom_code: str | None
    ├─ title / description: str | None
    └─ expires_at: datetime | None

    LinkUpdate (Input)
    ├─ active: bool | None
    └─ expires_at: datetime | None

    LinkResponse (Output)
    ├─ id, short_code, original_url, short_url
    ├─ clicks, active, expires_at
    └─ created_at, updated_at

    LinkStats (Output)
    ├─ LinkResponse fields
    ├─ recorded_clicks (click events in the store)
    └─ cached_clicks (ephemeral Redis counter)

    CachedLink (Redis payload, key url:{code})
    ├─ destination
    ├─ owner
    └─ cached_at

    ClickContext (click attribution)
    ├─ client_address
    ├─ user_agent
    └─ referrer

    HealthResponse (Output)
    ├─ status, database
    ├─ cache: CacheHealth
    └─ counts: StoreCounts

Key Behaviours
===============
- URL and custom-code validation happen in the service layer so that errors
  carry the specific messages of ``bitlytics.errors`` (HTTP 400, not 422).
- CachedLink serializes with the camelCase ``cachedAt`` alias used by every
  process sharing the cache.
- All datetime fields are timezone-aware.
"""

import datetime

from pydantic import BaseModel, ConfigDict, Field

from bitlytics.enums import HealthStatus

__all__ = [
    "CacheHealth",
    "CachedLink",
    "ClickContext",
    "HealthResponse",
    "LinkCreate",
    "LinkResponse",
    "LinkStats",
    "LinkUpdate",
    "ResolvedLink",
    "StoreCounts",
]


class LinkCreate(BaseModel):
    url: str = Field(..., max_length=2048)
    custom_code: str | None = None
    title: str | None = Field(None, max_length=200)
    description: str | None = Field(None, max_length=1000)
    expires_at: datetime.datetime | None = None


class LinkUpdate(BaseModel):
    active: bool | None = None
    expires_at: datetime.datetime | None = None

    def has_changes(self) -> bool:
        return bool(self.model_fields_set)


class LinkResponse(BaseModel):
    id: int
    short_code: str
    original_url: str
    short_url: str
    clicks: int
    active: bool
    expires_at: datetime.datetime | None = None
    created_at: datetime.datetime
    updated_at: datetime.datetime


class LinkStats(LinkResponse):
    # Reported side by side; the counters are allowed to disagree.
    recorded_clicks: int
    cached_clicks: int


class CachedLink(BaseModel):
    """Redis payload for ``url:{code}``."""

    model_config = ConfigDict(populate_by_name=True)

    destination: str
    owner: str | None = None
    cached_at: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc),
        alias="cachedAt",
    )

    def age_seconds(self, now: datetime.datetime | None = None) -> float:
        now = now or datetime.datetime.now(datetime.timezone.utc)
        cached_at = self.cached_at
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=datetime.timezone.utc)
        return (now - cached_at).total_seconds()


class ClickContext(BaseModel):
    client_address: str = "127.0.0.1"
    user_agent: str | None = None
    referrer: str | None = None


class ResolvedLink(BaseModel):
    code: str
    destination: str
    from_cache: bool


class CacheHealth(BaseModel):
    connected: bool
    memory_usage: str | None = None
    key_count: int | None = None


class StoreCounts(BaseModel):
    urls: int | None = None
    clicks: int | None = None


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: CacheHealth
    counts: StoreCounts
