"""
Centralized Test Configuration.
"""

import fnmatch

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, get_session_factory, Base
from backend.app.domain.accounts.account_service import AccountService
from backend.app.models.ledger_enums import Polarity
from backend.app.services.cache import CacheService, InMemoryCacheBackend, get_cache_service

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ORG_ID = 1
OTHER_ORG_ID = 2

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for the redis cache backend
class MockRedis:
    def __init__(self):
        self.store = {}
        self.expiries = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        self.expiries[key] = ex
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def scan_iter(self, match=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def flushdb(self):
        self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    # The pooled aiosqlite connection is bound to this test's event loop
    await engine.dispose()


@pytest.fixture
def cache():
    return CacheService(InMemoryCacheBackend(), default_ttl=300)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def client(cache):
    """Async client for testing, wired to the test database and cache."""
    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_cache_service] = lambda: cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Organization-ID": str(ORG_ID)},
    ) as ac:
        yield ac

    app.dependency_overrides = {}


@pytest.fixture
def create_account(db_session, cache):
    """Factory: create an account through the service (defaults: payable, 1 installment)."""
    async def _create(
        amount="300.00",
        due_dates=("2024-03-10",),
        polarity=Polarity.PAYABLE,
        organization_id=ORG_ID,
        counterparty_id=1,
    ):
        return await AccountService.create_account(
            db_session,
            cache,
            polarity,
            organization_id=organization_id,
            counterparty_id=counterparty_id,
            amount=amount,
            due_dates=list(due_dates),
            installment_count=len(due_dates),
        )
    return _create
