"""Shortener engine tests: allocation, custom tokens, read-through resolution."""

import asyncio
import datetime
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from urlshortener.codec import encode
from urlshortener.engine import MAX_ID_SKIPS, ShortenerEngine
from urlshortener.exceptions import (
    DuplicateCustomTokenError,
    EmptyURLError,
    InternalError,
    InvalidCustomTokenError,
    StoreUnavailableError,
)

# ============================================================================
# GENERATION
# ============================================================================


class TestGenerate:
    @pytest.mark.asyncio
    async def test_first_token_on_empty_store(self, engine: ShortenerEngine) -> None:
        token = await engine.generate("https://example.com")
        assert token == encode(1) == "1"

    @pytest.mark.asyncio
    async def test_tokens_follow_ids(self, engine: ShortenerEngine, sample_urls) -> None:
        tokens = [await engine.generate(url) for url in sample_urls]
        assert tokens == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_empty_url_rejected(self, engine: ShortenerEngine) -> None:
        with pytest.raises(EmptyURLError):
            await engine.generate("")
        assert await engine.store.next_id() == 1

    @pytest.mark.asyncio
    async def test_empty_custom_token_means_generated(self, engine: ShortenerEngine) -> None:
        assert await engine.generate("https://example.com", "") == "1"

    @pytest.mark.asyncio
    async def test_invalid_custom_token(self, engine: ShortenerEngine) -> None:
        with pytest.raises(InvalidCustomTokenError):
            await engine.generate("https://example.com", "invalid@token")
        assert await engine.store.lookup("invalid@token") is None

    @pytest.mark.asyncio
    async def test_valid_custom_token(self, engine: ShortenerEngine) -> None:
        token = await engine.generate("https://example.com", "valid-token_1")
        assert token == "valid-token_1"
        assert await engine.resolve("valid-token_1") == ("https://example.com", True)

    @pytest.mark.asyncio
    async def test_duplicate_custom_token(self, engine: ShortenerEngine) -> None:
        await engine.generate("https://example.com", "taken1")
        with pytest.raises(DuplicateCustomTokenError, match="taken1"):
            await engine.generate("https://other.example.com", "taken1")
        assert await engine.resolve("taken1") == ("https://example.com", True)

    @pytest.mark.asyncio
    async def test_client_errors_are_value_errors(self, engine: ShortenerEngine) -> None:
        with pytest.raises(ValueError):
            await engine.generate("")

    @pytest.mark.asyncio
    async def test_expiration_is_persisted(self, engine: ShortenerEngine) -> None:
        expires_at = datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)
        token = await engine.generate("https://example.com", expires_at=expires_at)

        entry = await engine.store.lookup(token)
        assert entry.expires_at == expires_at

    @pytest.mark.asyncio
    async def test_generated_id_skips_custom_token(self, engine: ShortenerEngine) -> None:
        assert await engine.generate("https://example.com/1") == "1"
        await engine.generate("https://custom.example.com", "2")

        assert await engine.generate("https://example.com/3") == "3"
        assert await engine.resolve("2") == ("https://custom.example.com", True)

    @pytest.mark.asyncio
    async def test_too_many_skipped_ids(self, engine: ShortenerEngine) -> None:
        for i in range(1, MAX_ID_SKIPS + 2):
            await engine.generate(f"https://custom.example.com/{i}", encode(i))

        with pytest.raises(InternalError):
            await engine.generate("https://example.com")

    @pytest.mark.asyncio
    async def test_collision_with_generated_entry_is_internal(self, engine: ShortenerEngine, mock_logger) -> None:
        await engine.generate("https://example.com")

        with patch.object(engine.store, "next_id", AsyncMock(return_value=1)):
            with pytest.raises(InternalError):
                await engine.generate("https://other.example.com")

        mock_logger.critical.assert_called_once()

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, engine: ShortenerEngine) -> None:
        with patch.object(engine.store, "next_id", AsyncMock(side_effect=StoreUnavailableError("down"))):
            with pytest.raises(StoreUnavailableError):
                await engine.generate("https://example.com")

        assert not engine.allocation_lock.locked()

    @pytest.mark.asyncio
    async def test_lock_released_after_duplicate(self, engine: ShortenerEngine) -> None:
        await engine.generate("https://example.com", "dup")
        with pytest.raises(DuplicateCustomTokenError):
            await engine.generate("https://example.com", "dup")
        assert not engine.allocation_lock.locked()


# ============================================================================
# CONCURRENCY
# ============================================================================


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_generated_tokens_are_unique(self, engine: ShortenerEngine) -> None:
        urls = [f"https://example.com/page_{i}" for i in range(30)]

        tokens = await asyncio.gather(*[engine.generate(url) for url in urls])

        assert len(set(tokens)) == len(urls)
        for url, token in zip(urls, tokens):
            assert await engine.resolve(token) == (url, True)

    @pytest.mark.asyncio
    async def test_concurrent_custom_token_exclusive(self, engine: ShortenerEngine) -> None:
        results = await asyncio.gather(
            engine.generate("https://a.example.com", "same"),
            engine.generate("https://b.example.com", "same"),
            return_exceptions=True,
        )

        successes = [r for r in results if r == "same"]
        duplicates = [r for r in results if isinstance(r, DuplicateCustomTokenError)]
        assert len(successes) == 1
        assert len(duplicates) == 1

    @pytest.mark.asyncio
    async def test_cache_hit_does_not_wait_for_allocation_lock(
        self, engine: ShortenerEngine, redis_data: dict
    ) -> None:
        redis_data["url:hot"] = "https://example.com/hot"

        async with engine.allocation_lock:
            result = await asyncio.wait_for(engine.resolve("hot"), timeout=1.0)

        assert result == ("https://example.com/hot", True)


# ============================================================================
# RESOLUTION
# ============================================================================


class TestResolve:
    @pytest.mark.asyncio
    async def test_round_trip(self, engine: ShortenerEngine) -> None:
        token = await engine.generate("https://example.com")
        assert await engine.resolve(token) == ("https://example.com", True)

    @pytest.mark.asyncio
    async def test_nonexistent(self, engine: ShortenerEngine, redis_data: dict) -> None:
        assert await engine.resolve("nonexistent") == ("", False)
        assert redis_data == {}

    @pytest.mark.asyncio
    async def test_empty_token_touches_nothing(self, engine: ShortenerEngine, mock_redis: AsyncMock) -> None:
        with patch.object(engine.store, "lookup", AsyncMock()) as lookup:
            assert await engine.resolve("") == ("", False)

        lookup.assert_not_awaited()
        mock_redis.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_miss_populates_cache_with_fixed_ttl(
        self, engine: ShortenerEngine, mock_redis: AsyncMock, redis_data: dict
    ) -> None:
        expires_at = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(minutes=5)
        token = await engine.generate("https://example.com", expires_at=expires_at)

        await engine.resolve(token)

        mock_redis.setex.assert_awaited_once_with(f"url:{token}", 86400, "https://example.com")
        assert redis_data[f"url:{token}"] == "https://example.com"

    @pytest.mark.asyncio
    async def test_hit_skips_store(self, engine: ShortenerEngine) -> None:
        token = await engine.generate("https://example.com")
        await engine.resolve(token)

        with patch.object(engine.store, "lookup", AsyncMock()) as lookup:
            assert await engine.resolve(token) == ("https://example.com", True)

        lookup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_read_error_falls_back_to_store(
        self, engine: ShortenerEngine, mock_redis: AsyncMock, mock_logger
    ) -> None:
        token = await engine.generate("https://example.com")
        mock_redis.get.side_effect = RedisConnectionError("connection refused")

        assert await engine.resolve(token) == ("https://example.com", True)
        mock_logger.error.assert_called()

    @pytest.mark.asyncio
    async def test_cache_write_error_is_swallowed(self, engine: ShortenerEngine, mock_redis: AsyncMock) -> None:
        token = await engine.generate("https://example.com")
        mock_redis.setex.side_effect = RedisConnectionError("connection refused")

        assert await engine.resolve(token) == ("https://example.com", True)

    @pytest.mark.asyncio
    async def test_cache_fully_down(self, engine: ShortenerEngine, mock_redis: AsyncMock) -> None:
        mock_redis.get.side_effect = RedisConnectionError("connection refused")
        mock_redis.setex.side_effect = RedisConnectionError("connection refused")

        token = await engine.generate("https://example.com")
        assert await engine.resolve(token) == ("https://example.com", True)
        assert await engine.resolve("nonexistent") == ("", False)

    @pytest.mark.asyncio
    async def test_store_failure_on_miss_propagates(self, engine: ShortenerEngine) -> None:
        with patch.object(engine.store, "lookup", AsyncMock(side_effect=StoreUnavailableError("down"))):
            with pytest.raises(StoreUnavailableError):
                await engine.resolve("abc")

        assert not engine.allocation_lock.locked()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, engine: ShortenerEngine, mock_redis: AsyncMock) -> None:
        assert await engine.health() == {"database": True, "cache": True}

        mock_redis.ping.side_effect = RedisConnectionError("connection refused")
        assert await engine.health() == {"database": True, "cache": False}
