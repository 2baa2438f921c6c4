"""Engine construction options."""

from bitlytics.config import get_settings
from bitlytics.database import engine_options


def test_server_database_has_bounded_waits() -> None:
    settings = get_settings()

    options = engine_options("postgresql+asyncpg://user:pw@db:5432/bitlytics")

    assert options["connect_args"] == {"timeout": settings.DATABASE_CONNECT_TIMEOUT_SECONDS}
    assert options["pool_timeout"] == settings.DATABASE_POOL_TIMEOUT_SECONDS
    assert options["pool_size"] == settings.DATABASE_POOL_SIZE
    assert options["pool_pre_ping"] is True


def test_sqlite_skips_pool_options() -> None:
    options = engine_options("sqlite+aiosqlite:///./local.db", echo=True)

    assert options == {"echo": True}
