"""Shared pytest fixtures: SQLite-backed store, in-memory cache, services, API client."""

import datetime
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

import bitlytics.models  # noqa: F401  registers tables on Base.metadata
from bitlytics.clicks import ClickRecorder
from bitlytics.config import Settings
from bitlytics.database import Base, build_engine, get_db
from bitlytics.dependencies import ServiceManager, get_service_manager
from bitlytics.link_service import LinkService
from bitlytics.main import app
from bitlytics.resolver import ResolutionService
from bitlytics.schemas import CacheHealth, CachedLink
from bitlytics.store import LinkStore
from bitlytics.tasks import BackgroundTaskQueue


class InMemoryURLCache:
    """Dict-backed stand-in for ``URLCache`` with the same soft-fail contract.

    ``available = False`` simulates an unreachable Redis: reads miss, writes
    report failure, nothing raises. TTLs run on a manual clock (``advance``).
    """

    def __init__(self, default_ttl: int = 3600) -> None:
        self.default_ttl = default_ttl
        self.available = True
        self.clock = 0.0
        self.entries: dict[str, tuple[CachedLink, float]] = {}
        self.counters: dict[str, int] = {}
        self.owners: dict[str, set[str]] = {}

    def advance(self, seconds: float) -> None:
        self.clock += seconds

    def clear(self) -> None:
        self.entries.clear()
        self.counters.clear()
        self.owners.clear()

    def seed(self, code: str, destination: str, cached_at: datetime.datetime | None = None) -> None:
        payload = CachedLink(destination=destination)
        if cached_at is not None:
            payload.cached_at = cached_at
        self.entries[code] = (payload, self.clock + self.default_ttl)

    async def put(self, code, destination, owner=None, ttl_seconds=None) -> bool:
        if not self.available:
            return False
        payload = CachedLink(destination=destination, owner=owner)
        self.entries[code] = (payload, self.clock + (ttl_seconds or self.default_ttl))
        if owner:
            self.owners.setdefault(owner, set()).add(code)
        return True

    async def get(self, code):
        if not self.available:
            return None
        entry = self.entries.get(code)
        if entry is None:
            return None
        payload, expires_at = entry
        if self.clock >= expires_at:
            del self.entries[code]
            return None
        return payload

    async def increment_clicks(self, code) -> int:
        if not self.available:
            return 0
        self.counters[code] = self.counters.get(code, 0) + 1
        return self.counters[code]

    async def get_click_count(self, code) -> int:
        if not self.available:
            return 0
        return self.counters.get(code, 0)

    async def invalidate(self, code) -> bool:
        if not self.available:
            return False
        self.entries.pop(code, None)
        self.counters.pop(code, None)
        return True

    async def health_status(self) -> CacheHealth:
        if not self.available:
            return CacheHealth(connected=False)
        return CacheHealth(connected=True, memory_usage="1K", key_count=len(self.entries) + len(self.counters))


@pytest.fixture
def settings() -> Settings:
    return Settings(APP_ENV="test", BASE_URL="http://test", LOG_LEVEL="DEBUG")


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bitlytics.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session: AsyncSession) -> LinkStore:
    return LinkStore(db_session)


@pytest.fixture
def fake_cache() -> InMemoryURLCache:
    return InMemoryURLCache()


@pytest_asyncio.fixture(scope="function")
async def task_queue() -> AsyncGenerator[BackgroundTaskQueue, None]:
    queue = BackgroundTaskQueue(name="test-clicks", maxsize=100, workers=2)
    yield queue
    await queue.stop(timeout=1.0)


@pytest.fixture
def recorder(session_factory, fake_cache) -> ClickRecorder:
    return ClickRecorder(session_factory, fake_cache)


@pytest.fixture
def resolver(fake_cache, store, recorder, task_queue, session_factory) -> ResolutionService:
    return ResolutionService(
        fake_cache,
        store,
        recorder,
        task_queue,
        session_factory,
        cache_ttl=3600,
    )


@pytest.fixture
def link_service(store, fake_cache, settings) -> LinkService:
    return LinkService(store, fake_cache, settings)


@pytest_asyncio.fixture(scope="function")
async def service_manager(settings, fake_cache, session_factory) -> AsyncGenerator[ServiceManager, None]:
    manager = ServiceManager()
    await manager.initialize(settings=settings, cache=fake_cache, session_factory=session_factory)
    yield manager
    await manager.cleanup()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, service_manager) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def override_get_service_manager() -> ServiceManager:
        return service_manager

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_service_manager] = override_get_service_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
