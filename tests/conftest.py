"""Shared pytest fixtures: a SQLite-backed store, a dict-backed Redis mock and the engine."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
import redis.asyncio as redis

from urlshortener.cache import URLCache
from urlshortener.config import Settings
from urlshortener.database import create_db_engine
from urlshortener.engine import ShortenerEngine
from urlshortener.store import EntryStore
from urlshortener.sweeper import ExpirationSweeper


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        APP_ENV="test",
        BASE_URL="http://test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'urls.db'}",
        SWEEPER_ENABLED=False,
    )


@pytest.fixture
def mock_logger() -> MagicMock:
    """Mock logger."""
    logger = MagicMock()
    logger.info = MagicMock()
    logger.debug = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    logger.critical = MagicMock()
    return logger


@pytest_asyncio.fixture(scope="function")
async def store(settings: Settings, mock_logger: MagicMock) -> AsyncGenerator[EntryStore, None]:
    entry_store = EntryStore(create_db_engine(settings.DATABASE_URL), logger=mock_logger)
    await entry_store.init_schema()
    yield entry_store
    await entry_store.close()


@pytest.fixture
def redis_data() -> dict[str, str]:
    """Backing storage of the Redis mock, keyed by full cache key."""
    return {}


@pytest.fixture
def mock_redis(redis_data: dict[str, str]) -> AsyncMock:
    """Mock Redis client that behaves like a tiny key-value store."""

    def _setex(key, ttl, value):
        redis_data[key] = value
        return True

    def _delete(*keys):
        return sum(1 for key in keys if redis_data.pop(key, None) is not None)

    redis_client = AsyncMock(spec=redis.Redis)
    redis_client.get = AsyncMock(side_effect=lambda key: redis_data.get(key))
    redis_client.setex = AsyncMock(side_effect=_setex)
    redis_client.delete = AsyncMock(side_effect=_delete)
    redis_client.ping = AsyncMock(return_value=True)
    redis_client.aclose = AsyncMock(return_value=None)
    return redis_client


@pytest.fixture
def cache(mock_redis: AsyncMock, mock_logger: MagicMock) -> URLCache:
    return URLCache(mock_redis, logger=mock_logger)


@pytest.fixture
def engine(store: EntryStore, cache: URLCache, mock_logger: MagicMock) -> ShortenerEngine:
    return ShortenerEngine(store, cache, logger=mock_logger)


@pytest.fixture
def sweeper(engine: ShortenerEngine, mock_logger: MagicMock) -> ExpirationSweeper:
    return ExpirationSweeper(engine.store, engine.cache, lock=engine.allocation_lock, logger=mock_logger)


@pytest.fixture
def sample_urls() -> list[str]:
    return [
        "https://example.com",
        "https://github.com/eliuttth-dev",
        "https://www.python.org/downloads/",
    ]
