"""Click accounting for resolved redirects.

``ClickRecorder.record`` performs three independent steps. Each is attempted
regardless of the others and each failure is logged and swallowed:

::
    1. INSERT click_events            (own session, own commit)
    2. UPDATE short_links
         SET click_count = click_count + 1   (own session, own commit)
    3. INCR clicks:{code}             (Redis, via URLCache)

The durable ``click_count`` and the Redis counter are two independent,
eventually consistent views of the same traffic. Nothing reconciles them and
they may disagree at any instant.

Functions:
    extract_click_context():  Client attribution from request headers.

Classes:
    ClickRecorder:  Never-raising click writer used by background jobs.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping

from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bitlytics.cache import URLCache
from bitlytics.schemas import ClickContext
from bitlytics.store import LinkStore

__all__ = ["ClickRecorder", "extract_click_context"]

DEFAULT_CLIENT_ADDRESS = "127.0.0.1"

CLICK_RECORD_STEPS_TOTAL = Counter(
    "bitlytics_click_record_steps_total",
    "Click recording steps by outcome",
    ["step", "status"],
)


def extract_click_context(headers: Mapping[str, str], peer_host: str | None = None) -> ClickContext:
    """Build a ClickContext from request headers.

    Proxy headers win over the socket peer: first hop of ``x-forwarded-for``,
    then ``x-real-ip``, then ``cf-connecting-ip``.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded and forwarded.split(",")[0].strip():
        client_address = forwarded.split(",")[0].strip()
    else:
        client_address = (
            headers.get("x-real-ip")
            or headers.get("cf-connecting-ip")
            or peer_host
            or DEFAULT_CLIENT_ADDRESS
        )
    return ClickContext(
        client_address=client_address[:64],
        user_agent=headers.get("user-agent"),
        referrer=headers.get("referer"),
    )


class ClickRecorder:
    """Writes click events and counters; never raises to its caller."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: URLCache,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._logger = logger or logging.getLogger("bitlytics.clicks")

    async def record(self, link_id: int, code: str, click: ClickContext) -> None:
        await self._attempt("append_event", code, lambda: self._append_event(link_id, click))
        await self._attempt("increment_count", code, lambda: self._increment_count(link_id))
        await self._attempt("cache_counter", code, lambda: self._cache.increment_clicks(code))

    async def _append_event(self, link_id: int, click: ClickContext) -> None:
        async with self._session_factory() as session:
            await LinkStore(session).append_click(link_id, click)

    async def _increment_count(self, link_id: int) -> None:
        async with self._session_factory() as session:
            await LinkStore(session).increment_click_count(link_id)

    async def _attempt(self, step: str, code: str, operation: Callable[[], Awaitable[object]]) -> None:
        try:
            await operation()
        except Exception as exc:
            CLICK_RECORD_STEPS_TOTAL.labels(step=step, status="failed").inc()
            self._logger.error(f"Click tracking step '{step}' failed for {code}: {exc}")
            return
        CLICK_RECORD_STEPS_TOTAL.labels(step=step, status="success").inc()
