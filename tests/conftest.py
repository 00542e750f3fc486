from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

if TYPE_CHECKING:
    from crm.core.cache import CacheService

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from crm.core.rate_limit import limiter
from crm.main import app

# Fixed reference time so every time-window assertion is deterministic
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Start every test with an empty in-memory rate-limit window."""
    limiter.reset()
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Yield an ``httpx.AsyncClient`` wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Return an ``AsyncMock`` that behaves like ``redis.asyncio.Redis``."""
    redis = AsyncMock()
    redis.set = AsyncMock(return_value=True)
    redis.eval = AsyncMock(return_value=1)
    redis.ping = AsyncMock()
    return redis


@pytest.fixture
def mock_cache(mock_redis) -> "CacheService":
    """Return a ``CacheService`` backed by the mock Redis client."""
    from crm.core.cache import CacheService

    return CacheService(redis_client=mock_redis)


@pytest.fixture
def mock_session() -> AsyncMock:
    """An ``AsyncSession`` stand-in usable as ``async with session_factory()``."""
    session = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    return session


@pytest.fixture
def session_factory(mock_session) -> MagicMock:
    return MagicMock(return_value=mock_session)
