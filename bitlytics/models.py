"""SQLAlchemy ORM models for the short-link service.

This module defines the durable schema: the authoritative code → destination
mapping and the append-only click log.

Data Model Layout
=================
::
    short_links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ code (VARCHAR(20) UNIQUE, INDEXED)
    ├─ destination (TEXT NOT NULL)
    ├─ owner_id (VARCHAR(64) NULL, INDEXED)
    ├─ custom_code (BOOLEAN DEFAULT FALSE)
    ├─ title / description (TEXT NULL)
    ├─ active (BOOLEAN DEFAULT TRUE)
    ├─ expires_at (TIMESTAMPTZ NULL)
    ├─ click_count (INTEGER DEFAULT 0)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), ON UPDATE)

    click_events table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ link_id (FK short_links.id ON DELETE CASCADE, INDEXED)
    ├─ clicked_at (TIMESTAMPTZ, DEFAULT NOW())
    ├─ client_address (VARCHAR(64))
    ├─ user_agent / referrer (TEXT NULL)
    └─ country / city (VARCHAR NULL, reserved for geo enrichment)

Key Behaviours
===============
- code and destination never change after insert.
- click_count is only ever touched by an atomic ``click_count + 1`` UPDATE.
- Click events are append-only and disappear only with their link.

Classes:
    ShortLink:  A code → destination mapping with gating flags.
    ClickEvent:  One recorded redirect.
"""

import datetime
import math

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from bitlytics.database import Base

__all__ = ["ClickEvent", "ShortLink", "as_utc"]


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class ShortLink(Base):
    __tablename__ = "short_links"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    destination: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    custom_code: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    click_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.datetime.now(datetime.timezone.utc)
        return as_utc(self.expires_at) <= as_utc(now)

    def is_resolvable(self, now: datetime.datetime | None = None) -> bool:
        return self.active and not self.is_expired(now)

    def cache_ttl(self, default_ttl: int, now: datetime.datetime | None = None) -> int:
        """Cache lifetime for this link: never past its expiry."""
        if self.expires_at is None:
            return default_ttl
        now = now or datetime.datetime.now(datetime.timezone.utc)
        remaining = math.ceil((as_utc(self.expires_at) - as_utc(now)).total_seconds())
        return max(1, min(default_ttl, remaining))

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, code='{self.code}', active={self.active}, clicks={self.click_count})>"


class ClickEvent(Base):
    __tablename__ = "click_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    link_id: Mapped[int] = mapped_column(
        ForeignKey("short_links.id", ondelete="CASCADE"), index=True, nullable=False
    )
    clicked_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    client_address: Mapped[str] = mapped_column(String(64), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(String(64), nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)

    def __repr__(self) -> str:
        return f"<ClickEvent(id={self.id}, link_id={self.link_id}, client_address='{self.client_address}')>"
