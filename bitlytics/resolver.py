"""Short-code resolution: cache first, durable store second, tracking detached.

State Machine
=============
::
    ┌──────────────┐
    │ CacheLookup   │
    └──────┬───────┘
     HIT   │   MISS (absent, unreadable, Redis down, or older than max_staleness)
    ┌──────┴─────────────────────────┐
    ▼                                ▼
 ┌──────────────────┐        ┌──────────────┐
 │ Respond          │        │ StoreLookup   │── store error ──▶ StoreUnavailable (503)
 │ + submit job:    │        └──────┬───────┘
 │   id lookup      │        Found  │  absent / inactive / expired
 │   → ClickRecorder│     ┌─────────┴─────────┐
 └──────────────────┘     ▼                   ▼
                   ┌──────────────────┐  ┌──────────────┐
                   │ cache.put (soft)  │  │ LinkNotFound  │ (404)
                   │ Respond           │  └──────────────┘
                   │ + submit job:     │
                   │   ClickRecorder   │
                   └──────────────────┘

Key Behaviours
===============
- The request awaits exactly one tier before it has an answer; click
  tracking is handed to ``BackgroundTaskQueue`` and never awaited.
- A cached destination is trusted for up to the cache TTL (or
  ``max_staleness`` seconds when configured). Deactivation, expiry and
  deletion become visible once that window passes or the entry is invalidated.
- Redis failures are misses. Store failures on the miss path fail closed.
- Nothing that happens in a tracking job can change a response already issued.

Classes:
    ResolutionService:  Per-request resolver bound to the request's session.
"""

import functools
import logging
import time

from prometheus_client import Counter, Histogram
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bitlytics.cache import DEFAULT_CACHE_TTL_SECONDS, URLCache
from bitlytics.clicks import ClickRecorder
from bitlytics.enums import CacheStatus, ResolutionOutcome
from bitlytics.errors import LinkNotFound, StoreUnavailable
from bitlytics.schemas import CachedLink, ClickContext, ResolvedLink
from bitlytics.store import LinkStore
from bitlytics.tasks import BackgroundTaskQueue

__all__ = ["ResolutionService"]

RESOLUTIONS_TOTAL = Counter(
    "bitlytics_resolutions_total",
    "Short-code resolutions by cache status and outcome",
    ["cache_status", "outcome"],
)
RESOLUTION_DURATION = Histogram(
    "bitlytics_resolution_duration_seconds",
    "Time to produce a redirect decision",
    buckets=[0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
TRACKING_SUBMISSIONS_TOTAL = Counter(
    "bitlytics_tracking_submissions_total",
    "Click tracking jobs handed to the background queue",
    ["accepted"],
)


class ResolutionService:
    """Turns a short code into a redirect decision.

    Args:
        cache: Soft-failing link cache.
        store: Durable store bound to the request session (miss path only).
        recorder: Click writer run inside background jobs.
        queue: Fire-and-forget job queue.
        session_factory: Sessions for background jobs, independent of the request.
        cache_ttl: TTL used when populating the cache on a miss.
        max_staleness: Optional age limit for trusting a cache hit.
    """

    def __init__(
        self,
        cache: URLCache,
        store: LinkStore,
        recorder: ClickRecorder,
        queue: BackgroundTaskQueue,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        cache_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        max_staleness: int | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._cache = cache
        self._store = store
        self._recorder = recorder
        self._queue = queue
        self._session_factory = session_factory
        self._cache_ttl = cache_ttl
        self._max_staleness = max_staleness
        self._logger = logger or logging.getLogger("bitlytics.resolver")

    async def resolve(self, code: str, click: ClickContext | None = None) -> ResolvedLink:
        """Resolve ``code`` to its destination.

        Raises:
            LinkNotFound: Unknown, inactive or expired code (indistinguishable).
            StoreUnavailable: Cache missed and the durable store failed.
        """
        start_time = time.perf_counter()
        click = click or ClickContext()

        cached = await self._cache.get(code)
        if cached is not None and self._is_fresh(cached):
            self._submit(functools.partial(self._track_cached_hit, code, click))
            self._observe(start_time, CacheStatus.HIT, ResolutionOutcome.REDIRECT)
            self._logger.debug(f"Cache hit for {code}")
            return ResolvedLink(code=code, destination=cached.destination, from_cache=True)

        cache_status = CacheStatus.MISS if cached is None else CacheStatus.STALE
        try:
            link = await self._store.get_resolvable(code)
        except (SQLAlchemyError, OSError) as exc:
            self._observe(start_time, cache_status, ResolutionOutcome.STORE_ERROR)
            self._logger.error(f"Store lookup failed for {code}: {exc}")
            raise StoreUnavailable() from exc

        if link is None:
            if cached is not None:
                await self._cache.invalidate(code)
            self._observe(start_time, cache_status, ResolutionOutcome.NOT_FOUND)
            raise LinkNotFound()

        link_id, destination, owner = link.id, link.destination, link.owner_id
        ttl = link.cache_ttl(self._cache_ttl)
        await self._cache.put(code, destination, owner, ttl)
        self._submit(functools.partial(self._recorder.record, link_id, code, click))
        self._observe(start_time, cache_status, ResolutionOutcome.REDIRECT)
        self._logger.debug(f"Resolved {code} from store and cached for {ttl}s")
        return ResolvedLink(code=code, destination=destination, from_cache=False)

    def _is_fresh(self, cached: CachedLink) -> bool:
        if self._max_staleness is None:
            return True
        return cached.age_seconds() <= self._max_staleness

    def _submit(self, job: functools.partial) -> None:
        accepted = self._queue.submit(job)
        TRACKING_SUBMISSIONS_TOTAL.labels(accepted=str(accepted).lower()).inc()
        if not accepted:
            self._logger.warning("Click tracking job dropped")

    async def _track_cached_hit(self, code: str, click: ClickContext) -> None:
        # A hit carries no record id; fetch it before attributing the click.
        try:
            async with self._session_factory() as session:
                link_id = await LinkStore(session).get_id_by_code(code)
        except Exception as exc:
            self._logger.error(f"Click attribution lookup failed for {code}: {exc}")
            return
        if link_id is None:
            self._logger.warning(f"Cached code {code} has no stored record, click not recorded")
            return
        await self._recorder.record(link_id, code, click)

    @staticmethod
    def _observe(start_time: float, cache_status: CacheStatus, outcome: ResolutionOutcome) -> None:
        RESOLUTION_DURATION.observe(time.perf_counter() - start_time)
        RESOLUTIONS_TOTAL.labels(cache_status=cache_status, outcome=outcome).inc()
