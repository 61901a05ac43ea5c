"""
Core Service — Test Configuration (conftest.py)
=================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.
When:  Fixtures are created fresh for each test.

Fixture Hierarchy:
    ├── settings: Settings with every required key filled, no env files read
    ├── fake_clock: Manually advanced monotonic clock for the rate limiter
    ├── engine / db_session: in-memory SQLite (aiosqlite) with a `listings` table
    ├── listing_repo: Repository[Listing]
    ├── mock_db_session: AsyncMock session for call-shape assertions
    ├── make_context: builds an AppContext around a verifier and limiter
    └── make_client: HTTPX AsyncClient over ASGITransport for a built app
"""

import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.config import Settings
from core.context import AppContext
from core.main import create_app
from core.persistence import Repository
from core.services.auth import JWTSessionVerifier
from core.services.rate_limiter import RateLimiter

from support import TEST_CLOUDINARY_URL, TEST_SECRET, FakeClock, Listing, ListingBase

# Keep CORE_* variables from the developer's shell out of the tests
for _key in list(os.environ):
    if _key.startswith("CORE_"):
        del os.environ[_key]


# ══════════════════════════════════════════════════════════════════════════
# Configuration & Clocks
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        env="local",
        server_port="8080",
        clerk_key=TEST_SECRET,
        cloudinary_key=TEST_CLOUDINARY_URL,
        log_level="WARNING",
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite shared by every session of one test (StaticPool)."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(ListingBase.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def listing_repo():
    return Repository(Listing)


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        await repo.batch_insert(mock_db_session, records, 2)
        assert mock_db_session.flush.await_count == 3
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Application
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_context(settings, fake_clock):
    """
    Builds an AppContext without touching any external system.

    Usage:
        context = make_context(limiter=RateLimiter(burst_size=1, clock=fake_clock))
    """

    def _make(verifier="default", limiter=None, session_factory=None) -> AppContext:
        if verifier == "default":
            verifier = JWTSessionVerifier(TEST_SECRET, algorithms=["HS256"])
        return AppContext(
            settings=settings,
            rate_limiter=limiter if limiter is not None else RateLimiter(clock=fake_clock),
            verifier=verifier,
            session_factory=session_factory,
        )

    return _make


@pytest.fixture
def make_client():
    """
    Provides async HTTP test clients for a built app.

    Usage:
        async with make_client(create_app(context)) as client:
            response = await client.get("/api/probe")
    """

    def _make(app, client=("127.0.0.1", 50000), raise_app_exceptions=True) -> AsyncClient:
        transport = ASGITransport(
            app=app, client=client, raise_app_exceptions=raise_app_exceptions
        )
        return AsyncClient(transport=transport, base_url="http://test")

    return _make


@pytest.fixture
def app(make_context):
    return create_app(make_context())
