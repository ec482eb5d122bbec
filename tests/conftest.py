"""Shared pytest fixtures: SQLite-backed stores, an in-memory Redis and the API client."""

import time
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from shortlink.cache import URLCache
from shortlink.click_store import ClickStore
from shortlink.codes import SeededSource, ShortCodeGenerator
from shortlink.config import Settings
from shortlink.database import build_session_factory, init_db
from shortlink.dependencies import ServiceManager
from shortlink.main import app
from shortlink.url_store import URLStore


class InMemoryRedis:
    """The subset of ``redis.asyncio.Redis`` used by URLCache, held in a dict.

    Set ``fail = True`` to make every call raise a connection error.
    """

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self._expires: dict[str, float] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("redis unavailable")

    async def get(self, key: str) -> str | None:
        self._check()
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.data.pop(key, None)
            self._expires.pop(key, None)
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
            self._expires[key] = time.monotonic() + ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self._expires.pop(key, None)
        return removed

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shortlink.db'}",
        BASE_URL="http://sho.rt",
        CACHE_TTL_SECONDS=3600,
        SHORT_CODE_LENGTH=7,
        SHORT_CODE_MAX_ATTEMPTS=5,
        LOG_LEVEL="DEBUG",
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_async_engine(settings.DATABASE_URL, echo=False)
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def url_store(sessions) -> URLStore:
    return URLStore(sessions)


@pytest.fixture
def click_store(sessions) -> ClickStore:
    return ClickStore(sessions)


@pytest.fixture
def redis_client() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def cache(redis_client: InMemoryRedis) -> URLCache:
    return URLCache(redis_client, default_ttl_seconds=3600, key_prefix="url:", op_timeout_seconds=1.0)


@pytest_asyncio.fixture
async def manager(settings, engine, sessions, cache) -> AsyncGenerator[ServiceManager, None]:
    services = ServiceManager(
        settings=settings,
        engine=engine,
        sessions=sessions,
        cache=cache,
        generator=ShortCodeGenerator(7, source=SeededSource(1234)),
    )
    services.recorder.start()
    yield services
    await services.recorder.stop()


@pytest.fixture
def service(manager: ServiceManager):
    return manager.service


@pytest_asyncio.fixture
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    app.state.services = manager
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.services
