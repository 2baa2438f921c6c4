"""Click attribution and recording."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from bitlytics.clicks import ClickRecorder, extract_click_context
from bitlytics.schemas import ClickContext
from bitlytics.store import LinkStore


async def _stored_link(session_factory, code: str):
    async with session_factory() as session:
        store = LinkStore(session)
        link = await store.get_by_code(code)
        events = await store.count_click_events(link.id)
    return link, events


# ============================================================================
# CLIENT ATTRIBUTION
# ============================================================================


def test_forwarded_for_first_hop_wins():
    headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "x-real-ip": "198.51.100.1"}
    assert extract_click_context(headers, "10.0.0.2").client_address == "203.0.113.7"


def test_real_ip_then_cloudflare_then_peer():
    assert extract_click_context({"x-real-ip": "198.51.100.1"}, "10.0.0.2").client_address == "198.51.100.1"
    assert extract_click_context({"cf-connecting-ip": "192.0.2.5"}, "10.0.0.2").client_address == "192.0.2.5"
    assert extract_click_context({}, "10.0.0.2").client_address == "10.0.0.2"
    assert extract_click_context({}).client_address == "127.0.0.1"


def test_user_agent_and_referrer():
    click = extract_click_context({"user-agent": "curl/8.0", "referer": "https://news.example/"}, None)
    assert click.user_agent == "curl/8.0"
    assert click.referrer == "https://news.example/"


# ============================================================================
# RECORDER
# ============================================================================


class TestClickRecorder:
    """Three independent steps, none of which may raise."""

    @pytest.mark.asyncio
    async def test_record_updates_all_counters(self, recorder, store, fake_cache, session_factory):
        """Test a healthy record writes event, durable count and cache counter."""
        link = await store.create(code="abc123", destination="https://example.com/")

        await recorder.record(link.id, "abc123", ClickContext(client_address="203.0.113.7", user_agent="pytest"))

        stored, events = await _stored_link(session_factory, "abc123")
        assert stored.click_count == 1
        assert events == 1
        assert fake_cache.counters["abc123"] == 1

    @pytest.mark.asyncio
    async def test_repeated_clicks_accumulate(self, recorder, store, session_factory):
        """Test every click is counted once."""
        link = await store.create(code="burst1", destination="https://example.com/")

        for _ in range(10):
            await recorder.record(link.id, "burst1", ClickContext())

        stored, events = await _stored_link(session_factory, "burst1")
        assert stored.click_count == 10
        assert events == 10

    @pytest.mark.asyncio
    async def test_count_failure_does_not_block_event_or_cache(
        self, recorder, store, fake_cache, session_factory, monkeypatch
    ):
        """Test the counters are independent: a failed UPDATE leaves the rest intact."""
        link = await store.create(code="abc123", destination="https://example.com/")
        monkeypatch.setattr(
            LinkStore, "increment_click_count", AsyncMock(side_effect=SQLAlchemyError("deadlock"))
        )

        await recorder.record(link.id, "abc123", ClickContext())

        stored, events = await _stored_link(session_factory, "abc123")
        assert events == 1
        assert stored.click_count == 0
        assert fake_cache.counters["abc123"] == 1

    @pytest.mark.asyncio
    async def test_store_outage_never_raises(self, fake_cache):
        """Test a dead database only loses the durable writes."""

        def broken_factory():
            raise OperationalError("connect", {}, Exception("database is down"))

        recorder = ClickRecorder(broken_factory, fake_cache)
        await recorder.record(1, "abc123", ClickContext())

        assert fake_cache.counters["abc123"] == 1

    @pytest.mark.asyncio
    async def test_cache_outage_never_raises(self, store, session_factory, fake_cache):
        """Test Redis down still records durably."""
        link = await store.create(code="abc123", destination="https://example.com/")
        fake_cache.available = False
        recorder = ClickRecorder(session_factory, fake_cache)

        await recorder.record(link.id, "abc123", ClickContext())

        stored, events = await _stored_link(session_factory, "abc123")
        assert stored.click_count == 1
        assert events == 1
        assert "abc123" not in fake_cache.counters

    @pytest.mark.asyncio
    async def test_cache_raising_is_contained(self, store, session_factory):
        """Test even a cache that violates its soft-fail contract cannot escape."""
        link = await store.create(code="abc123", destination="https://example.com/")
        cache = AsyncMock()
        cache.increment_clicks = AsyncMock(side_effect=RuntimeError("unexpected"))
        recorder = ClickRecorder(session_factory, cache)

        await recorder.record(link.id, "abc123", ClickContext())

        stored, _ = await _stored_link(session_factory, "abc123")
        assert stored.click_count == 1
