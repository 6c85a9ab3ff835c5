"""Shortener engine: token allocation and resolution.

The engine owns the allocation lock and orchestrates the codec, the durable
store and the cache. One instance is built per process and passed explicitly
to every caller (HTTP routes, the sweeper, tests).

Allocation Flow
===============
::
    ┌─────────────┐
    │ generate()  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate URL│── empty ──▶ EmptyURLError
    │ & custom    │── bad chars ──▶ InvalidCustomTokenError
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ async with  │
    │ alloc lock  │
    └──────┬──────┘
    CUSTOM? │
    ┌──────┴──────┐
    │ YES         │ NO
    ▼             ▼
┌──────────┐  ┌──────────────┐
│ try_     │  │ next_id()    │
│ insert_  │  │ encode()     │
│ custom() │  │ insert_      │
└────┬─────┘  │ generated()  │
     │        └──────┬───────┘
     ▼               ▼
 exists? ──▶    collision? ──▶ skip id (custom row)
 Duplicate-     or InternalError (generated row)
 CustomToken

Resolution Flow
===============
::
    ┌─────────────┐
    │ resolve()   │── empty ──▶ ("", False), no I/O
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ cache.get() │── hit ──▶ (url, True), lock never taken
    └──────┬──────┘
      miss / error
           ▼
    ┌─────────────┐
    │ alloc lock  │
    │ store.lookup│── none ──▶ ("", False)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ cache.set() │── error ──▶ logged, ignored
    └──────┬──────┘
           ▼
      (url, True)

Key Behaviours
===============
- Id generation and the matching insert form one critical section, so
  concurrent generated tokens are totally ordered and pairwise distinct.
- Custom-token reservation shares the same lock; the store's primary key
  makes it atomic on its own as well.
- The lock is never held across a cache call.
- Cache failures never fail a request; store failures always do, and are not
  retried.
"""

import asyncio
import datetime
import logging
import time
from typing import Optional

from urlshortener import codec
from urlshortener.cache import DEFAULT_CACHE_TTL_SECONDS, URLCache
from urlshortener.enums import CacheStatus, InsertResult, RequestStatus
from urlshortener.exceptions import (
    CacheUnavailableError,
    DuplicateCustomTokenError,
    EmptyURLError,
    InternalError,
    InvalidCustomTokenError,
    InvalidRequestError,
    UniqueViolationError,
)
from urlshortener.metrics import (
    CACHE_ERRORS_TOTAL,
    TOKEN_GENERATION_DURATION,
    TOKEN_GENERATION_REQUESTS_TOTAL,
    TOKEN_RESOLUTION_REQUESTS_TOTAL,
)
from urlshortener.models import to_utc
from urlshortener.store import EntryStore

__all__ = ["ShortenerEngine", "MAX_ID_SKIPS"]

# Upper bound on consecutive ids skipped because a custom token already holds
# their Base62 form.
MAX_ID_SKIPS = 16


class ShortenerEngine:
    """Allocation/resolution state machine over a store and a cache.

    Example:
        >>> engine = ShortenerEngine(store, cache)
        >>> token = await engine.generate("https://example.com")
        >>> await engine.resolve(token)
        ('https://example.com', True)
    """

    def __init__(
        self,
        store: EntryStore,
        cache: URLCache,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.allocation_lock = asyncio.Lock()
        self._logger = logger or logging.getLogger("urlshortener")

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def generate(
        self,
        original_url: str,
        custom_token: Optional[str] = None,
        expires_at: Optional[datetime.datetime] = None,
    ) -> str:
        """Allocate a token for ``original_url``.

        Args:
            original_url: Redirect target, must be non-empty
            custom_token: Caller-chosen token; None or "" requests a generated one
            expires_at: Optional expiration; naive values are taken as UTC

        Returns:
            str: The custom token, or the Base62 form of the next id

        Raises:
            EmptyURLError: If ``original_url`` is empty
            InvalidCustomTokenError: If ``custom_token`` has forbidden characters
            DuplicateCustomTokenError: If ``custom_token`` is already taken
            InternalError: If a generated token collides with a generated entry
            StoreUnavailableError: If the store fails
        """
        kind = "custom" if custom_token else "generated"
        start_time = time.perf_counter()

        try:
            if not original_url:
                raise EmptyURLError()
            if custom_token and not codec.validate_custom_token(custom_token):
                raise InvalidCustomTokenError(custom_token)
            if expires_at is not None:
                expires_at = to_utc(expires_at)

            async with self.allocation_lock:
                if custom_token:
                    token = await self._reserve_custom_token(custom_token, original_url, expires_at)
                else:
                    token = await self._allocate_generated_token(original_url, expires_at)

        except InvalidRequestError as exc:
            TOKEN_GENERATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR, kind=kind).inc()
            self._logger.warning(f"Token generation rejected: {exc}")
            raise
        except Exception:
            TOKEN_GENERATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR, kind=kind).inc()
            raise

        duration = time.perf_counter() - start_time
        TOKEN_GENERATION_DURATION.observe(duration)
        TOKEN_GENERATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, kind=kind).inc()
        self._logger.info(f"Generated token {token} -> {original_url} in {duration:.3f}s")
        return token

    async def resolve(self, token: str) -> tuple[str, bool]:
        """Resolve ``token`` to its original URL.

        Returns:
            tuple[str, bool]: ``(url, True)`` when found, ``("", False)`` otherwise

        Raises:
            StoreUnavailableError: If the cache missed and the store failed
        """
        if not token:
            return "", False

        cached_url = await self._lookup_from_cache(token)
        if cached_url:
            TOKEN_RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.HIT).inc()
            self._logger.debug(f"[Redis] Cache hit: {token} --> {cached_url}")
            return cached_url, True

        self._logger.debug(f"[Redis] Cache miss: {token}")

        try:
            async with self.allocation_lock:
                entry = await self.store.lookup(token)
        except Exception:
            TOKEN_RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR, cache_hit=CacheStatus.MISS).inc()
            raise

        if entry is None:
            TOKEN_RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache_hit=CacheStatus.MISS).inc()
            self._logger.info(f"[DB] Token not found: {token}")
            return "", False

        await self._populate_cache(token, entry.original_url)
        TOKEN_RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.MISS).inc()
        return entry.original_url, True

    async def health(self) -> dict[str, bool]:
        database = await self.store.ping()
        cache = await self.cache.ping()
        return {"database": database, "cache": cache}

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _reserve_custom_token(
        self,
        token: str,
        original_url: str,
        expires_at: Optional[datetime.datetime],
    ) -> str:
        result = await self.store.try_insert_custom(token, original_url, expires_at)
        if result is InsertResult.ALREADY_EXISTS:
            raise DuplicateCustomTokenError(token)
        return token

    async def _allocate_generated_token(
        self,
        original_url: str,
        expires_at: Optional[datetime.datetime],
    ) -> str:
        """Allocate the next id and persist its entry. Caller holds the allocation lock."""
        next_id = await self.store.next_id()

        for _ in range(MAX_ID_SKIPS + 1):
            token = codec.encode(next_id)
            try:
                await self.store.insert_generated(next_id, token, original_url, expires_at)
                return token
            except UniqueViolationError as exc:
                if not exc.custom_collision:
                    self._logger.critical(
                        f"Generated token {token} (id={next_id}) collides with a generated entry"
                    )
                    raise InternalError(f"Generated token '{token}' already exists") from exc
                self._logger.warning(f"Id {next_id} skipped: token {token} is held by a custom entry")
                next_id += 1

        self._logger.critical(f"Gave up allocating a token after {MAX_ID_SKIPS} skipped ids")
        raise InternalError("Unable to allocate a generated token")

    async def _lookup_from_cache(self, token: str) -> Optional[str]:
        try:
            return await self.cache.get(token)
        except CacheUnavailableError as exc:
            CACHE_ERRORS_TOTAL.labels(operation="get").inc()
            self._logger.error(f"[Redis] Cache error for {token}: {exc}")
            return None

    async def _populate_cache(self, token: str, original_url: str) -> None:
        try:
            await self.cache.set(token, original_url, ttl=self.cache_ttl_seconds)
        except CacheUnavailableError as exc:
            CACHE_ERRORS_TOTAL.labels(operation="set").inc()
            self._logger.error(f"[Redis] Failed to cache token: {token} -> {original_url}, error: {exc}")
        else:
            self._logger.debug(f"[Redis] Cached token: {token} -> {original_url}")
