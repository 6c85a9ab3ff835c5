"""Durable store for token → URL entries.

``EntryStore`` is the only component that talks to the database. Every public
operation opens its own short-lived ``AsyncSession``, is bounded by a per-call
timeout and converts driver failures into ``StoreUnavailableError``, so the
engine never sees SQLAlchemy exceptions.

Operation Overview
==================
::
    next_id()            SELECT COALESCE(MAX(id), 0) + 1
    insert_generated()   INSERT (id, token, url, expires_at)
                         └─ IntegrityError → UniqueViolationError
    try_insert_custom()  INSERT (token, url, expires_at)
                         └─ IntegrityError → InsertResult.ALREADY_EXISTS
    lookup()             SELECT by primary key
    delete_expired()     SELECT tokens WHERE expires_at < now
                         DELETE the same tokens (one transaction)

Concurrency
===========
Custom-token reservation relies on the primary key constraint, so the
check-and-insert is atomic inside the database even without the engine's
allocation lock. ``next_id`` followed by ``insert_generated`` is *not* atomic
on its own; the engine serializes that pair under its allocation lock and the
unique ``id`` column turns any violation into a reported error.
"""

import asyncio
import datetime
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from urlshortener.database import close_db, init_db
from urlshortener.enums import InsertResult
from urlshortener.exceptions import StoreUnavailableError, UniqueViolationError
from urlshortener.models import Entry, to_utc

__all__ = ["EntryStore"]


class EntryStore:
    """SQLAlchemy-backed persistent table of entries."""

    def __init__(
        self,
        engine: AsyncEngine,
        timeout_seconds: float = 5.0,
        logger: Optional[logging.Logger] = None,
    ):
        self._engine = engine
        self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        self._timeout = timeout_seconds
        self._logger = logger or logging.getLogger("urlshortener")

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with asyncio.timeout(self._timeout):
                async with self._sessions() as session:
                    yield session
        except (SQLAlchemyError, OSError, TimeoutError) as exc:
            self._logger.error(f"[DB] {operation} failed: {exc!r}")
            raise StoreUnavailableError(f"Store {operation} failed") from exc

    async def init_schema(self) -> None:
        await init_db(self._engine)

    async def close(self) -> None:
        await close_db(self._engine)

    async def ping(self) -> bool:
        try:
            async with self._session("ping") as session:
                await session.execute(text("SELECT 1"))
            return True
        except StoreUnavailableError:
            return False

    async def next_id(self) -> int:
        """Return ``max(existing ids) + 1``, or 1 when no generated entry exists."""
        async with self._session("next_id") as session:
            result = await session.scalar(select(func.coalesce(func.max(Entry.id), 0) + 1))
        return int(result)

    async def insert_generated(
        self,
        id: int,
        token: str,
        original_url: str,
        expires_at: Optional[datetime.datetime] = None,
    ) -> None:
        """Insert a system-generated entry.

        Raises:
            UniqueViolationError: If ``token`` or ``id`` is already stored
            StoreUnavailableError: On any other database failure
        """
        async with self._session("insert_generated") as session:
            session.add(Entry(id=id, token=token, original_url=original_url, expires_at=expires_at))
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                existing = await session.get(Entry, token)
                custom_collision = existing is not None and not existing.is_generated
                raise UniqueViolationError(token, custom_collision=custom_collision) from exc

    async def try_insert_custom(
        self,
        token: str,
        original_url: str,
        expires_at: Optional[datetime.datetime] = None,
    ) -> InsertResult:
        """Insert a custom entry iff ``token`` is absent."""
        async with self._session("try_insert_custom") as session:
            session.add(Entry(id=None, token=token, original_url=original_url, expires_at=expires_at))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                self._logger.debug(f"[DB] Custom token already exists: {token}")
                return InsertResult.ALREADY_EXISTS
        return InsertResult.INSERTED

    async def lookup(self, token: str) -> Optional[Entry]:
        async with self._session("lookup") as session:
            return await session.get(Entry, token)

    async def delete_expired(self, now: datetime.datetime) -> list[str]:
        """Delete every entry whose ``expires_at`` is strictly before ``now``.

        Args:
            now: Reference time; naive values are taken as UTC

        Returns:
            list[str]: Tokens of the deleted entries, for cache eviction
        """
        now = to_utc(now)
        async with self._session("delete_expired") as session:
            async with session.begin():
                result = await session.scalars(
                    select(Entry.token).where(Entry.expires_at.is_not(None), Entry.expires_at < now)
                )
                tokens = list(result.all())
                if tokens:
                    await session.execute(delete(Entry).where(Entry.token.in_(tokens)))
        return tokens
