"""Configuration management for the URL shortener core.

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
    from urlshortener.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Override in tests**::
    settings = Settings(DATABASE_URL="sqlite+aiosqlite:///./test.db", SWEEPER_ENABLED=False)

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- The default store is a local SQLite file driven through aiosqlite.
- Cache TTL is fixed per process and independent of entry expiration.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "url-shortener"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:3030"
    LOG_LEVEL: str = "INFO"

    # Durable store
    DATABASE_URL: str = "sqlite+aiosqlite:///./urls.db"

    # Redis cache
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_KEY_PREFIX: str = "url"
    CACHE_TTL_SECONDS: int = 24 * 60 * 60

    # Per-call bound for every store and cache round-trip
    BACKEND_TIMEOUT_SECONDS: float = 5.0

    # Expiration sweeper
    SWEEPER_ENABLED: bool = True
    SWEEP_INTERVAL_SECONDS: int = 60 * 60

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
