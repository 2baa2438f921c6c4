"""Durable store operations over an ``AsyncSession``.

``LinkStore`` is the only place that issues SQL. It is bound to one session:
request handlers get one per request, background jobs open their own.

Key Behaviours
===============
- ``get_resolvable`` applies the gating rules (active, not expired) at read
  time, so a stale cache entry is the only way to reach a gated link.
- ``increment_click_count`` is a single ``UPDATE ... SET click_count =
  click_count + 1``; there is no read-modify-write anywhere.
- Unique-constraint violations on insert surface as ``CodeConflict``.

Classes:
    LinkStore:  Query and mutation helpers for ShortLink / ClickEvent.
"""

import datetime
from typing import Any

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bitlytics.errors import CodeConflict
from bitlytics.models import ClickEvent, ShortLink
from bitlytics.schemas import ClickContext, StoreCounts

__all__ = ["LinkStore"]


class LinkStore:
    def __init__(self, session: AsyncSession) -> None:
        assert session is not None, "session must not be None"
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def get_by_code(self, code: str) -> ShortLink | None:
        result = await self._session.execute(select(ShortLink).where(ShortLink.code == code))
        return result.scalar_one_or_none()

    async def get_resolvable(self, code: str, now: datetime.datetime | None = None) -> ShortLink | None:
        """Active, non-expired link for ``code``, else None."""
        result = await self._session.execute(
            select(ShortLink).where(ShortLink.code == code, ShortLink.active.is_(True))
        )
        link = result.scalar_one_or_none()
        if link is None or not link.is_resolvable(now):
            return None
        return link

    async def get_id_by_code(self, code: str) -> int | None:
        result = await self._session.execute(select(ShortLink.id).where(ShortLink.code == code))
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        return await self.get_id_by_code(code) is not None

    async def create(self, **values: Any) -> ShortLink:
        link = ShortLink(**values)
        self._session.add(link)
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise CodeConflict() from exc
        await self._session.refresh(link)
        return link

    async def append_click(self, link_id: int, click: ClickContext) -> None:
        self._session.add(
            ClickEvent(
                link_id=link_id,
                client_address=click.client_address,
                user_agent=click.user_agent,
                referrer=click.referrer,
            )
        )
        await self._session.commit()

    async def increment_click_count(self, link_id: int) -> None:
        await self._session.execute(
            update(ShortLink)
            .where(ShortLink.id == link_id)
            .values(click_count=ShortLink.click_count + 1)
        )
        await self._session.commit()

    async def count_click_events(self, link_id: int) -> int:
        result = await self._session.execute(
            select(func.count(ClickEvent.id)).where(ClickEvent.link_id == link_id)
        )
        return int(result.scalar_one())

    async def update_link(self, link: ShortLink, **values: Any) -> ShortLink:
        for name, value in values.items():
            setattr(link, name, value)
        await self._session.commit()
        await self._session.refresh(link)
        return link

    async def delete_link(self, link: ShortLink) -> None:
        # Click events go with their link on every backend, FK cascade or not.
        await self._session.execute(delete(ClickEvent).where(ClickEvent.link_id == link.id))
        await self._session.execute(delete(ShortLink).where(ShortLink.id == link.id))
        await self._session.commit()

    async def ping(self) -> None:
        await self._session.execute(text("SELECT 1"))

    async def counts(self) -> StoreCounts:
        urls = await self._session.execute(select(func.count(ShortLink.id)))
        clicks = await self._session.execute(select(func.count(ClickEvent.id)))
        return StoreCounts(urls=int(urls.scalar_one()), clicks=int(clicks.scalar_one()))
