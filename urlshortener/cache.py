"""Redis cache layer in front of the durable store.

The cache is a best-effort accelerator: it is never authoritative and every
operation may fail. Failures are raised as ``CacheUnavailableError``; deciding
whether a failure is fatal is left to the caller (the engine downgrades all of
them).

Flow Diagram — Read-Through
===========================
::
    ┌─────────────┐
    │ engine.     │
    │ resolve()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ cache.get() │── error ──▶ treated as miss
    └──────┬──────┘
    HIT?   │
    ┌──────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ store.  │  │ return  │
│ lookup()│  │ URL     │
└────┬────┘  └─────────┘
     ▼
┌─────────┐
│ cache.  │── error ──▶ logged, swallowed
│ set()   │
└─────────┘

Key Behaviours
===============
- Keys are ``{prefix}:{token}``; values are the original URL as plain text.
- Every entry is written with ``SETEX`` and a fixed TTL (24h by default),
  independent of the entry's own expiration.
- Socket timeouts bound each round-trip; a timeout is a ``CacheUnavailableError``.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from urlshortener.exceptions import CacheUnavailableError

__all__ = ["URLCache", "DEFAULT_CACHE_TTL_SECONDS"]

DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60


class URLCache:
    """Redis cache for token → original URL."""

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        key_prefix: str = "url",
        logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self._logger = logger or logging.getLogger("urlshortener")

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        key_prefix: str = "url",
        timeout_seconds: float = 5.0,
        logger: Optional[logging.Logger] = None,
    ) -> "URLCache":
        client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        return cls(client, ttl_seconds=ttl_seconds, key_prefix=key_prefix, logger=logger)

    def get_cache_key(self, token: str) -> str:
        return f"{self.key_prefix}:{token}"

    async def get(self, token: str) -> Optional[str]:
        """Return the cached URL for ``token`` or None on a miss.

        Raises:
            CacheUnavailableError: If Redis cannot be reached
        """
        try:
            return await self.client.get(self.get_cache_key(token))
        except (RedisError, OSError) as exc:
            raise CacheUnavailableError(f"Cache get failed for {token}: {exc}") from exc

    async def set(self, token: str, original_url: str, ttl: Optional[int] = None) -> None:
        try:
            await self.client.setex(self.get_cache_key(token), ttl or self.ttl_seconds, original_url)
        except (RedisError, OSError) as exc:
            raise CacheUnavailableError(f"Cache set failed for {token}: {exc}") from exc

    async def evict(self, token: str) -> bool:
        """Delete ``token`` from the cache. Returns True if a key was removed."""
        try:
            removed = await self.client.delete(self.get_cache_key(token))
        except (RedisError, OSError) as exc:
            raise CacheUnavailableError(f"Cache evict failed for {token}: {exc}") from exc
        return bool(removed)

    async def ping(self) -> bool:
        try:
            await self.client.ping()
            return True
        except (RedisError, OSError) as exc:
            self._logger.error(f"[Redis] Ping failed: {exc}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
        self._logger.info("[Redis] Connection closed")
