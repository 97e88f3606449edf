"""
Shared test fixtures.

These replace real infrastructure with lightweight local alternatives:
- PostgreSQL → a SQLite file per test, opened twice: a sync engine (pysqlite)
  for the core services and worker threads, and an async engine (aiosqlite)
  for the async API endpoints. Both see the same data.
- Redis → fakeredis, one FakeServer shared by the sync and async clients
- HTTP server → httpx.AsyncClient with ASGI transport (no network)

A file instead of :memory: because the claimer and processor tests run real
threads, and every thread needs its own connection to the same database.

This means tests:
- Run without Docker
- Run fast (no network)
- Are fully isolated (each test gets a fresh database and Redis)
"""

import uuid
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis as AsyncFakeRedis
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import sessionmaker

from models.base import Base
from models.submission import Submission
from api.main import create_app
from api.dependencies import get_db, get_redis, get_session_factory, get_sync_redis


class FakeClock:
    """Controllable replacement for utc_now(). Starts slightly ahead of real time."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime.now(timezone.utc) + timedelta(seconds=5)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "feedback.db"


@pytest.fixture
def sync_engine(db_path):
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sync_engine):
    return sessionmaker(sync_engine, expire_on_commit=False)


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    """Sync fake Redis, as used by the worker side."""
    return fakeredis.FakeRedis(server=redis_server)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_submission(session_factory):
    """Insert a submission and return it (detached, attributes loaded)."""

    def _make(code_text="def solve(xs):\n    return sorted(xs)\n", classroom_task_id=None, **overrides):
        submission = Submission(
            id=overrides.pop("id", uuid.uuid4()),
            task_id=overrides.pop("task_id", uuid.uuid4()),
            classroom_task_id=classroom_task_id,
            student_id=overrides.pop("student_id", uuid.uuid4()),
            attempt_no=overrides.pop("attempt_no", 1),
            code_text=code_text,
            language=overrides.pop("language", "python"),
            **overrides,
        )
        with session_factory() as session:
            session.add(submission)
            session.commit()
        return submission

    return _make


@pytest_asyncio.fixture
async def async_engine(sync_engine, db_path):
    """Async view of the same SQLite file (tables already created)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine):
    """Create a database session bound to the test engine."""
    factory = async_sessionmaker(async_engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def fake_redis(redis_server):
    """Async fake Redis sharing data with redis_client."""
    r = AsyncFakeRedis(server=redis_server)
    yield r
    await r.flushall()


@pytest_asyncio.fixture
async def client(async_session, fake_redis, session_factory, redis_client):
    """
    Create a test HTTP client that talks directly to the FastAPI app.

    dependency_overrides tells FastAPI: "instead of using the real database
    and Redis, use these test versions." ASGITransport means requests go
    directly to the app in-process, no HTTP server or network involved.
    """
    app = create_app()

    async def override_get_db():
        yield async_session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_sync_redis] = lambda: redis_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
