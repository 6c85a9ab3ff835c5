"""FastAPI application entry point for the URL shortener.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ setup_logger│
    │ init_schema │
    │ Redis client│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Engine on   │
    │ app.state   │
    │ sweeper     │
    │ .start()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ shutdown:   │
    │ sweeper.stop│
    │ cache.close │
    │ store.close │
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn urlshortener.main:app --host 0.0.0.0 --port 3030

**Step 2 — Make API calls**::
    curl -X POST http://localhost:3030/generate \
         -H "Content-Type: application/json" \
         -d '{"original_url": "https://example.com"}'

    curl -i http://localhost:3030/1

Key Behaviours
===============
- Tables are created on startup.
- An unreachable Redis does not prevent startup; resolution falls back to
  the store until the cache comes back.
- The sweeper is stopped before the backends are closed.
- Docs, OpenAPI and Prometheus metrics are served under ``/api`` so that
  ``GET /{token}`` owns every single-segment path.

Configuration:
    See urlshortener/config.py for all available settings.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from urlshortener.cache import URLCache
from urlshortener.config import Settings, get_settings
from urlshortener.database import create_db_engine
from urlshortener.engine import ShortenerEngine
from urlshortener.logging_config import setup_logger
from urlshortener.routes import SYSTEM_PREFIX, router
from urlshortener.store import EntryStore
from urlshortener.sweeper import ExpirationSweeper


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        logger = setup_logger(settings.LOG_LEVEL)

        store = EntryStore(
            create_db_engine(settings.DATABASE_URL, echo=(settings.APP_ENV == "development")),
            timeout_seconds=settings.BACKEND_TIMEOUT_SECONDS,
            logger=logger,
        )
        await store.init_schema()

        cache = URLCache.from_url(
            settings.REDIS_URL,
            ttl_seconds=settings.CACHE_TTL_SECONDS,
            key_prefix=settings.CACHE_KEY_PREFIX,
            timeout_seconds=settings.BACKEND_TIMEOUT_SECONDS,
            logger=logger,
        )
        if not await cache.ping():
            logger.warning(f"[Redis] {settings.REDIS_URL} unreachable, serving from the store only")

        engine = ShortenerEngine(store, cache, cache_ttl_seconds=settings.CACHE_TTL_SECONDS, logger=logger)
        sweeper = ExpirationSweeper(
            store,
            cache,
            lock=engine.allocation_lock,
            interval_seconds=settings.SWEEP_INTERVAL_SECONDS,
            logger=logger,
        )
        if settings.SWEEPER_ENABLED:
            sweeper.start()

        app.state.engine = engine
        app.state.sweeper = sweeper
        logger.info(f"{settings.APP_NAME} started ({settings.APP_ENV})")
        yield
        # Shutdown
        await sweeper.stop()
        await cache.close()
        await store.close()

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Short token allocation and resolution service",
        lifespan=lifespan,
        docs_url=f"{SYSTEM_PREFIX}/docs",
        redoc_url=f"{SYSTEM_PREFIX}/redoc",
        openapi_url=f"{SYSTEM_PREFIX}/openapi.json",
        swagger_ui_oauth2_redirect_url=f"{SYSTEM_PREFIX}/docs/oauth2-redirect",
    )
    app.state.settings = settings

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app, endpoint=f"{SYSTEM_PREFIX}/metrics")

    app.include_router(router)
    return app


app = create_app()
