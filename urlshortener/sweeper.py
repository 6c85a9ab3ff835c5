"""Background sweeper that purges expired entries from the store and cache.

Flow Diagram — One Tick
=======================
::
    ┌─────────────┐
    │ sweep_once()│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ alloc lock  │
    │ store.      │── error ──▶ logged, tick ends
    │ delete_     │
    │ expired()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ for token:  │
    │ cache.evict │── error ──▶ logged, next token
    └──────┬──────┘
           ▼
     deleted tokens

How to Use
===========
**Step 1 — Start with the application**::
    sweeper = ExpirationSweeper(store, cache, engine.allocation_lock, interval_seconds=3600)
    sweeper.start()

**Step 2 — Stop on shutdown**::
    await sweeper.stop()

Key Behaviours
===============
- Exactly one background task per sweeper; ``start`` on a running sweeper is a no-op.
- The allocation lock is held only for the single store delete, never while
  evicting from the cache.
- A failed tick is never fatal; the loop waits for the next interval.
- ``stop`` wakes the loop immediately instead of waiting out the interval.
"""

import asyncio
import datetime
import logging
from typing import Optional

from urlshortener.cache import URLCache
from urlshortener.exceptions import CacheUnavailableError, StoreUnavailableError
from urlshortener.metrics import CACHE_ERRORS_TOTAL, SWEEP_FAILURES_TOTAL, SWEPT_ENTRIES_TOTAL
from urlshortener.store import EntryStore

__all__ = ["ExpirationSweeper", "DEFAULT_SWEEP_INTERVAL_SECONDS"]

DEFAULT_SWEEP_INTERVAL_SECONDS = 60 * 60


class ExpirationSweeper:
    """Periodic deletion of expired entries."""

    def __init__(
        self,
        store: EntryStore,
        cache: URLCache,
        lock: Optional[asyncio.Lock] = None,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.cache = cache
        self.lock = lock or asyncio.Lock()
        self.interval_seconds = interval_seconds
        self._logger = logger or logging.getLogger("urlshortener")
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self, now: Optional[datetime.datetime] = None) -> list[str]:
        """Run a single sweep and return the tokens deleted from the store."""
        now = now or datetime.datetime.now(datetime.timezone.utc)

        try:
            async with self.lock:
                tokens = await self.store.delete_expired(now)
        except StoreUnavailableError as exc:
            SWEEP_FAILURES_TOTAL.inc()
            self._logger.error(f"Sweep failed to delete expired entries: {exc}")
            return []

        for token in tokens:
            try:
                await self.cache.evict(token)
            except CacheUnavailableError as exc:
                CACHE_ERRORS_TOTAL.labels(operation="evict").inc()
                self._logger.error(f"[Redis] Failed to evict expired token {token}: {exc}")

        SWEPT_ENTRIES_TOTAL.inc(len(tokens))
        if tokens:
            self._logger.info(f"Swept {len(tokens)} expired entries")
        return tokens

    async def run(self) -> None:
        """Sweep every ``interval_seconds`` until ``stop`` is called."""
        self._logger.info(f"Starting expiration sweeper every {self.interval_seconds}s")

        while not self._stop_event.is_set():
            try:
                await self.sweep_once()
            except Exception as e:
                self._logger.error(f"Expiration sweep error: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

        self._logger.info("Expiration sweeper stopped")

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name="expiration-sweeper")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
