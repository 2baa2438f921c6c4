"""Link creation and management service.

This module covers everything around a link except resolving it: the
creation flow (normalize → pick code → insert → warm cache), statistics, and
the deactivate / expire / delete operations that must invalidate the cache.

Flow Diagram — create_link()
============================
::
    ┌─────────────┐
    │ LinkCreate   │
    └──────┬──────┘
           ▼
    ┌─────────────┐  UrlValidationError
    │ normalize_url│ ─────────────────────▶ 400
    └──────┬──────┘
           ▼
    custom_code? ──yes──▶ format / reserved ──▶ 400
           │                    │
           │                    ▼
           │              exists in store? ──▶ CodeConflict (409)
           │ no                 │
           ▼                    │
    ┌──────────────────┐        │
    │ allocate_unique_ │        │
    │ code (bounded)    │──▶ GenerationExhausted (503)
    └──────┬───────────┘        │
           ▼                    ▼
    ┌─────────────────────────────┐
    │ INSERT (unique race → 409)   │
    └──────┬──────────────────────┘
           ▼
    ┌─────────────┐
    │ cache.put    │ (best effort)
    └─────────────┘

Key Behaviours
===============
- Strict URL mode follows ``APP_ENV``; callers cannot switch it.
- Every state change that affects resolution invalidates ``url:{code}`` so
  the change is visible on the next request rather than after the TTL.
- Statistics report the durable count, the recorded click events and the
  Redis counter side by side without reconciling them.

Classes:
    LinkService:  Request-scoped service built from a RequestContext.
"""

import datetime
import logging
import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Histogram

from bitlytics.cache import URLCache
from bitlytics.config import Settings
from bitlytics.enums import RequestStatus
from bitlytics.errors import (
    AuthenticationRequired,
    CodeConflict,
    InvalidCustomCode,
    LinkNotFound,
    LinkValidationError,
    PermissionDenied,
    ReservedCode,
)
from bitlytics.models import ShortLink, as_utc
from bitlytics.normalizer import normalize_url
from bitlytics.schemas import LinkCreate, LinkResponse, LinkStats, LinkUpdate
from bitlytics.shortcode import allocate_unique_code, is_reserved_code, is_valid_custom_code
from bitlytics.store import LinkStore

if TYPE_CHECKING:
    from bitlytics.dependencies import RequestContext

__all__ = ["LinkService"]

LINK_CREATION_REQUESTS_TOTAL = Counter(
    "bitlytics_link_creation_requests_total",
    "Link creation requests by outcome",
    ["status"],
)
LINK_CREATION_DURATION = Histogram(
    "bitlytics_link_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
CACHE_INVALIDATIONS_TOTAL = Counter(
    "bitlytics_cache_invalidations_total",
    "Cache invalidations triggered by link changes",
    ["reason"],
)


class LinkService:
    """Creation, statistics and lifecycle operations for short links.

    Example:
        >>> service = LinkService.from_context(ctx)
        >>> link = await service.create_link(LinkCreate(url="example.com"))
        >>> link.destination
        'https://example.com/'
    """

    def __init__(
        self,
        store: LinkStore,
        cache: URLCache,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._settings = settings
        self._logger = logger or logging.getLogger("bitlytics.links")

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "LinkService":
        return cls(
            store=LinkStore(ctx.database),
            cache=ctx.cache,
            settings=ctx.settings,
            logger=ctx.logger,
        )

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_link(self, request: LinkCreate, owner_id: str | None = None) -> ShortLink:
        """Create a short link.

        Args:
            request: Destination plus optional custom code and metadata.
            owner_id: Opaque identifier from the auth collaborator, if any.

        Returns:
            ShortLink: The stored record.

        Raises:
            LinkValidationError: Bad URL, bad or reserved custom code, past expiry.
            CodeConflict: Custom code already taken (or lost an insert race).
            GenerationExhausted: Every random candidate collided.
        """
        start_time = time.perf_counter()
        try:
            destination = normalize_url(request.url, reject_private=self._settings.is_production)
            self._check_expiry(request.expires_at)
            code, custom = await self._choose_code(request.custom_code)
            link = await self._store.create(
                code=code,
                destination=destination,
                owner_id=owner_id,
                custom_code=custom,
                title=request.title,
                description=request.description,
                expires_at=as_utc(request.expires_at) if request.expires_at else None,
            )
        except LinkValidationError as exc:
            self._record_creation(start_time, RequestStatus.VALIDATION_ERROR)
            self._logger.warning(f"Link creation rejected: {exc}")
            raise
        except CodeConflict as exc:
            self._record_creation(start_time, RequestStatus.CONFLICT)
            self._logger.warning(f"Link creation conflict: {exc}")
            raise
        except Exception as exc:
            self._record_creation(start_time, RequestStatus.ERROR)
            self._logger.error(f"Link creation error: {exc}")
            raise

        await self._cache.put(
            link.code,
            link.destination,
            link.owner_id,
            link.cache_ttl(self._cache.default_ttl),
        )
        self._record_creation(start_time, RequestStatus.SUCCESS)
        self._logger.info(f"Short link created: {link.code} -> {link.destination}")
        return link

    async def get_link_statistics(self, code: str) -> LinkStats:
        link = await self._store.get_by_code(code)
        if link is None:
            raise LinkNotFound()
        recorded = await self._store.count_click_events(link.id)
        cached = await self._cache.get_click_count(code)
        return LinkStats(
            **self.to_response(link).model_dump(),
            recorded_clicks=recorded,
            cached_clicks=cached,
        )

    async def update_link(self, code: str, changes: LinkUpdate, owner_id: str | None) -> ShortLink:
        """Apply ``active`` / ``expires_at`` changes and invalidate the cache."""
        if not changes.has_changes():
            raise LinkValidationError("No valid fields to update")
        link = await self._get_owned(code, owner_id)
        values = changes.model_dump(include=changes.model_fields_set)
        if values.get("active") is None:
            values.pop("active", None)
        if values.get("expires_at") is not None:
            values["expires_at"] = as_utc(values["expires_at"])
        link = await self._store.update_link(link, **values)
        await self._invalidate(code, reason="update")
        self._logger.info(f"Short link updated: {code} {values}")
        return link

    async def delete_link(self, code: str, owner_id: str | None) -> None:
        link = await self._get_owned(code, owner_id)
        await self._store.delete_link(link)
        await self._invalidate(code, reason="delete")
        self._logger.info(f"Short link deleted: {code}")

    def to_response(self, link: ShortLink) -> LinkResponse:
        return LinkResponse(
            id=link.id,
            short_code=link.code,
            original_url=link.destination,
            short_url=f"{self._settings.BASE_URL.rstrip('/')}/{link.code}",
            clicks=link.click_count,
            active=link.active,
            expires_at=link.expires_at,
            created_at=link.created_at,
            updated_at=link.updated_at,
        )

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _choose_code(self, custom_code: str | None) -> tuple[str, bool]:
        if custom_code:
            code = custom_code.strip()
            if not is_valid_custom_code(code):
                raise InvalidCustomCode()
            if is_reserved_code(code):
                raise ReservedCode()
            if await self._store.code_exists(code):
                raise CodeConflict()
            return code, True

        code = await allocate_unique_code(
            self._store.code_exists,
            length=self._settings.SHORT_CODE_LENGTH,
            max_attempts=self._settings.SHORT_CODE_MAX_ATTEMPTS,
        )
        return code, False

    @staticmethod
    def _check_expiry(expires_at: datetime.datetime | None) -> None:
        if expires_at is None:
            return
        if as_utc(expires_at) <= datetime.datetime.now(datetime.timezone.utc):
            raise LinkValidationError("Expiration must be in the future")

    async def _get_owned(self, code: str, owner_id: str | None) -> ShortLink:
        if not owner_id:
            raise AuthenticationRequired()
        link = await self._store.get_by_code(code)
        if link is None:
            raise LinkNotFound()
        if link.owner_id != owner_id:
            raise PermissionDenied()
        return link

    async def _invalidate(self, code: str, reason: str) -> None:
        await self._cache.invalidate(code)
        CACHE_INVALIDATIONS_TOTAL.labels(reason=reason).inc()

    @staticmethod
    def _record_creation(start_time: float, status: RequestStatus) -> None:
        LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)
        LINK_CREATION_REQUESTS_TOTAL.labels(status=status).inc()
