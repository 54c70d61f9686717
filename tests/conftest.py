"""Shared pytest fixtures for all tests."""
import os

# Settings are read at import time, so provide test values first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./ledger.db")
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://quota.test")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test-token")

import httpx
import pytest
import respx
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ledger.config import settings
from ledger.database import Base, get_db
from ledger.main import app
from ledger.models.transaction import Transaction
from ledger.services.rate_limiter import RateLimiter

QUOTA_URL = "https://quota.test"


# ===== DATABASE CONFIGURATION =====

@pytest.fixture
def test_database_url(tmp_path) -> str:
    """TEST_DATABASE_URL when set (e.g. PostgreSQL), otherwise a throwaway SQLite file."""
    return os.environ.get(
        "TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'ledger_test.db'}"
    )


@pytest.fixture
async def test_engine(test_database_url):
    """Create tables, yield engine, then drop everything."""
    engine = create_async_engine(test_database_url, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def TestSessionLocal(test_engine):
    """Create session maker for tests."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ===== DEPENDENCY OVERRIDE =====

@pytest.fixture(autouse=True)
def override_get_db(TestSessionLocal):
    """Override FastAPI's get_db dependency."""
    async def _override_get_db():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    yield
    app.dependency_overrides.clear()


# ===== QUOTA COUNTER =====

@pytest.fixture
def quota_service():
    """Mock the Upstash pipeline endpoint; admits every request by default."""
    with respx.mock(base_url=QUOTA_URL, assert_all_called=False) as mock:
        mock.post("/pipeline", name="pipeline").mock(
            return_value=httpx.Response(
                200, json=[{"result": 1}, {"result": 1}, {"result": 60}]
            )
        )
        yield mock


@pytest.fixture(autouse=True)
def rate_limiter(quota_service):
    """Install a limiter pointed at the mocked counter on the app."""
    limiter = RateLimiter(
        url=QUOTA_URL,
        token="test-token",
        max_requests=5,
        window_seconds=60,
        timeout_seconds=1,
    )
    previous = app.state.rate_limiter
    app.state.rate_limiter = limiter
    yield limiter
    app.state.rate_limiter = previous


# ===== SHARED FIXTURES =====

@pytest.fixture
async def client():
    """Create test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session(TestSessionLocal):
    """Get database session for direct DB access."""
    async with TestSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@pytest.fixture
def auth_settings(monkeypatch):
    """Enable the session check with an HS256 shared secret."""
    monkeypatch.setattr(settings, "AUTH_ENABLED", True)
    monkeypatch.setattr(settings, "AUTH_JWT_KEY", "test-secret-key-with-enough-length-for-hs256")
    monkeypatch.setattr(settings, "AUTH_JWT_ALGORITHM", "HS256")
    monkeypatch.setattr(settings, "AUTH_JWT_ISSUER", None)
    return settings


@pytest.fixture
def row_count(TestSessionLocal):
    """Return an async callable counting rows in the transactions table."""
    async def _count() -> int:
        async with TestSessionLocal() as session:
            result = await session.execute(
                select(func.count()).select_from(Transaction)
            )
            return result.scalar_one()

    return _count
