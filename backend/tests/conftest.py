"""Master test fixtures.

Environment variables are set BEFORE any application imports so that
``config.Settings()`` initialises with test-safe values and never
touches Docker secrets or a production database.
"""

import os, uuid

# ── Set test env vars before any app import ──────────────────────────
os.environ.update({
    "DATABASE_URL": "sqlite+aiosqlite://",
    "REDIS_URL": "redis://localhost:6379/0",
    "APP_SECRET_KEY": "test-secret-key-for-jwt-signing-0123456789",
    "CLEAR_ALL_KEY": "test-clear-all-key",
    "RATE_LIMIT_MAX_REQUESTS": "1000",
})
os.environ.pop("POSTGRES_PASSWORD", None)

import pytest
import fakeredis
import fakeredis.aioredis as fakeredis_aio

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Now safe to import application code
from models.base import Base, get_db
from models.user import User
from models.storage_item import StorageItem
from auth.jwt import create_access_token


# ── SQLite async engine ──────────────────────────────────────────────
_test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)
_TestSession = async_sessionmaker(_test_engine, class_=AsyncSession, expire_on_commit=False)

_SQLITE_TABLES = [
    User.__table__,
    StorageItem.__table__,
]

QUIZ_ACCESS = [
    {"namespace": "quiz-app", "collection": None, "key": None, "methods": ["get", "set", "remove"]},
]


@pytest.fixture(autouse=True)
async def _create_tables():
    """Create and drop SQLite tables around every test."""
    async with _test_engine.begin() as conn:
        for table in _SQLITE_TABLES:
            await conn.run_sync(table.create, checkfirst=True)
    yield
    async with _test_engine.begin() as conn:
        for table in reversed(_SQLITE_TABLES):
            await conn.run_sync(table.drop, checkfirst=True)


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    """Replace rate_limiter._get_redis with a fakeredis instance."""
    server = fakeredis.FakeServer()
    fr = fakeredis_aio.FakeRedis(server=server, decode_responses=True)
    import throttle.rate_limiter as rl
    monkeypatch.setattr(rl, "_get_redis", lambda: fr)
    return fr


@pytest.fixture
async def db_session():
    """Yield a test DB session with auto-rollback."""
    async with _TestSession() as session:
        yield session


@pytest.fixture
async def test_client(db_session: AsyncSession):
    """HTTPX async client wired to the FastAPI app, with DB override.

    The startup event is NOT run; tables come from ``_create_tables``.
    """
    from main import app

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _add_user(db_session: AsyncSession, username: str, access) -> dict:
    user_id = uuid.uuid4()
    db_session.add(User(id=user_id, username=username, access=access))
    await db_session.commit()
    token = create_access_token(user_id)
    return {
        "id": user_id,
        "username": username,
        "access_token": token,
        "headers": {"Authorization": f"Bearer {token}"},
    }


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory inserting a user with the given access rules."""
    async def _make(username: str, access) -> dict:
        return await _add_user(db_session, username, access)
    return _make


@pytest.fixture
async def registered_user(db_session: AsyncSession) -> dict:
    """A user with full access to the ``quiz-app`` namespace."""
    return await _add_user(db_session, "tester", QUIZ_ACCESS)


@pytest.fixture
def auth_headers(registered_user: dict) -> dict[str, str]:
    """Authorization header for the registered test user."""
    return registered_user["headers"]
