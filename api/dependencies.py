"""
FastAPI dependency injection.

How this works:
- An endpoint declares `db: AsyncSession = Depends(get_db)`
- FastAPI calls get_db() before your endpoint runs, creating a DB session
- Your endpoint receives the session and uses it
- After the endpoint returns (or raises), the session is automatically closed

Two flavours of database access live side by side:
- get_db(): async session, used by read-only listing endpoints
- get_session_factory(): the sync sessionmaker that the core services
  (enqueuer, status projector, processor) take. Endpoints using it are plain
  `def` functions, so FastAPI runs them in its threadpool.

require_debug_enabled() gates the ops endpoints: when FEEDBACK_DEBUG_ENABLED is
off they answer 404, as if they did not exist.
"""

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request
from redis import Redis as SyncRedis
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from models.base import AsyncSessionLocal, SyncSessionLocal
from worker.processor import FeedbackProcessor


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yields an async database session, auto-closes when the request ends."""
    async with AsyncSessionLocal() as session:
        yield session


async def get_redis(request: Request) -> Redis:
    """Returns the async Redis client stored on the app during startup."""
    return request.app.state.redis


def get_sync_redis(request: Request) -> SyncRedis:
    """Returns the sync Redis client used by the processor."""
    return request.app.state.sync_redis


def get_session_factory() -> sessionmaker:
    return SyncSessionLocal


def get_processor(
    session_factory: sessionmaker = Depends(get_session_factory),
    redis_client: SyncRedis = Depends(get_sync_redis),
) -> FeedbackProcessor:
    return FeedbackProcessor(session_factory, redis_client)


def require_debug_enabled() -> None:
    if not settings.FEEDBACK_DEBUG_ENABLED:
        raise HTTPException(status_code=404, detail="Not Found")
