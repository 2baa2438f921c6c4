"""Dependency injection with a process-wide service manager.

Shared resources (settings, logger, Redis-backed cache, background queue,
click recorder, session factory) are built once per process by the
``ServiceManager``; each request gets a lightweight ``RequestContext`` that
adds its own database session and client details on top.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bitlytics.cache import URLCache
from bitlytics.clicks import ClickRecorder, extract_click_context
from bitlytics.config import Settings, get_settings
from bitlytics.database import get_db, get_session_factory
from bitlytics.link_service import LinkService
from bitlytics.redis import close_redis, get_redis
from bitlytics.resolver import ResolutionService
from bitlytics.schemas import ClickContext
from bitlytics.store import LinkStore
from bitlytics.tasks import BackgroundTaskQueue

__all__ = [
    "RequestContext",
    "ServiceManager",
    "get_current_owner",
    "get_link_service",
    "get_request_context",
    "get_resolution_service",
    "get_service_manager",
]

# Matches ShortLink.owner_id.
MAX_OWNER_ID_LENGTH = 64


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Holder for resources shared by every request in the process.

    ``initialize`` accepts overrides so tests can swap Redis, the cache or the
    session factory without touching module state.
    """

    _initialized: bool = False

    async def initialize(
        self,
        *,
        settings: Settings | None = None,
        redis_client: redis.Redis | None = None,
        cache: URLCache | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return
        self.settings = settings or get_settings()
        self.logger = self._setup_logger()
        self._owns_redis = cache is None and redis_client is None
        if cache is None:
            client = redis_client or await get_redis()
            cache = URLCache(
                client,
                default_ttl=self.settings.URL_CACHE_TTL_SECONDS,
                logger=self.logger.getChild("cache"),
            )
        self.cache = cache
        self.session_factory = session_factory or get_session_factory()
        self.task_queue = BackgroundTaskQueue(
            name="click-tracking",
            maxsize=self.settings.CLICK_QUEUE_MAX_SIZE,
            workers=self.settings.CLICK_WORKERS,
            logger=self.logger.getChild("tasks"),
        )
        self.click_recorder = ClickRecorder(
            self.session_factory,
            self.cache,
            logger=self.logger.getChild("clicks"),
        )
        self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("bitlytics")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def cleanup(self) -> None:
        """Drain background work and release shared resources at shutdown."""
        if not self._initialized:
            return
        await self.task_queue.stop(timeout=self.settings.TRACKING_SHUTDOWN_TIMEOUT_SECONDS)
        if self._owns_redis:
            await close_redis()
        self._initialized = False


# Global instance shared by the application
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request view over the shared resources.

    Attributes:
        database: Async database session (only per-request resource)
        service_manager: Shared resources
        click: Client attribution for click tracking
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        start_time: Request start timestamp
    """

    database: AsyncSession
    service_manager: ServiceManager
    click: ClickContext = field(default_factory=ClickContext)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())

    @property
    def cache(self) -> URLCache:
        return self.service_manager.cache

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying request context."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.click.client_address,
                "user_agent": self.click.user_agent,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    peer_host = request.client.host if request.client else None
    return RequestContext(
        database=db,
        service_manager=manager,
        click=extract_click_context(request.headers, peer_host),
        trace_id=request.headers.get("x-trace-id"),
    )


def get_current_owner(x_user_id: Optional[str] = Header(None, alias="X-User-ID")) -> Optional[str]:
    """Owner identifier supplied by the upstream authentication layer.

    The service treats it as opaque; requests without it are anonymous.
    Identifiers longer than the owner column are refused, never truncated.
    """
    if x_user_id is None:
        return None
    owner_id = x_user_id.strip()
    if len(owner_id) > MAX_OWNER_ID_LENGTH:
        raise HTTPException(status_code=400, detail="X-User-ID header is too long")
    return owner_id or None


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    return LinkService.from_context(ctx)


def get_resolution_service(ctx: RequestContext = Depends(get_request_context)) -> ResolutionService:
    manager = ctx.service_manager
    return ResolutionService(
        cache=manager.cache,
        store=LinkStore(ctx.database),
        recorder=manager.click_recorder,
        queue=manager.task_queue,
        session_factory=manager.session_factory,
        cache_ttl=ctx.settings.URL_CACHE_TTL_SECONDS,
        max_staleness=ctx.settings.CACHE_MAX_STALENESS_SECONDS,
        logger=ctx.logger,
    )
