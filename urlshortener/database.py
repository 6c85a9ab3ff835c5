"""Database engine construction and schema lifecycle for the durable store.

This module builds the SQLAlchemy async engine used by ``EntryStore`` and owns
the declarative base for all models. Nothing here is a module-level global:
the application lifespan creates one engine per process and hands it to the
store.

Flow Diagram — Database Lifecycle
=================================
::
    ┌─────────────┐
    │  Lifespan   │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_db_   │
    │ engine()     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ init_db()    │
    │ create_all   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ EntryStore   │
    │ sessions     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()   │
    │ (shutdown)   │
    └─────────────┘

How to Use
===========
**Step 1 — Build the engine**::
    engine = create_db_engine(settings.DATABASE_URL, echo=False)

**Step 2 — Create tables on startup**::
    await init_db(engine)

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- SQLite URLs (the default, via aiosqlite) skip pool sizing, which the
  SQLite pools do not accept.
- Other backends get the same pooling parameters as a production PostgreSQL.
- Tables are created idempotently on startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_db_engine():  Builds the async engine for a database URL.
    init_db():  Creates all tables.
    close_db():  Disposes the engine.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

__all__ = ["Base", "create_db_engine", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def create_db_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if make_url(database_url).get_backend_name() == "sqlite":
        return create_async_engine(database_url, echo=echo)

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
