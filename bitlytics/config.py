"""Configuration management for the Bitlytics short-link service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from bitlytics.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    ttl = settings.URL_CACHE_TTL_SECONDS

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- ``APP_ENV=production`` switches the URL normalizer into strict mode
  (localhost and private addresses are rejected).
- ``CACHE_MAX_STALENESS_SECONDS`` bounds how long a cached mapping may be
  trusted after a deactivation; left unset, the bound is the cache TTL.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "bitlytics"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://bitlytics:bitlytics@db:5432/bitlytics"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_CONNECT_TIMEOUT_SECONDS: float = 5.0
    DATABASE_POOL_TIMEOUT_SECONDS: float = 5.0

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 0.5

    # Short code generation
    SHORT_CODE_LENGTH: int = 6
    SHORT_CODE_MAX_ATTEMPTS: int = 10

    # Resolution cache
    URL_CACHE_TTL_SECONDS: int = 3600
    CACHE_MAX_STALENESS_SECONDS: int | None = None

    # Background click tracking
    CLICK_QUEUE_MAX_SIZE: int = 10000
    CLICK_WORKERS: int = 4
    TRACKING_SHUTDOWN_TIMEOUT_SECONDS: float = 5.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
