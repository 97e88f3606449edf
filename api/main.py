"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (create DB tables, connect to Redis)
3. Registers all routers (health, submissions, ai-feedback)
4. Runs shutdown logic (close connections)

The `lifespan` context manager is FastAPI's way of handling startup/shutdown.
It replaces the older @app.on_event("startup") pattern.

The API never processes jobs on its own. Feedback is produced by the worker
process (python -m worker.main); the only in-process processing is the
debug-gated process-once endpoint.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis import Redis
from redis.asyncio import Redis as AsyncRedis

from config.settings import settings
from models.base import async_engine, Base
from api.routers import feedback, health, submissions

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Runs on startup (before yield) and shutdown (after yield).

    Startup:
    - Creates all DB tables if they don't exist (safe to run multiple times)
    - Connects to Redis (async client for endpoints, sync client for the processor)

    Shutdown:
    - Closes Redis connections
    - Disposes the DB engine (closes connection pool)
    """
    # ── Startup ─────────────────────────────────────────────────
    logger.info("Creating database tables...")
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.redis = AsyncRedis.from_url(settings.redis_url)
    app.state.sync_redis = Redis.from_url(settings.redis_url)
    logger.info(
        f"API ready, provider: {settings.FEEDBACK_PROVIDER}, "
        f"debug endpoints: {'on' if settings.FEEDBACK_DEBUG_ENABLED else 'off'}"
    )

    yield  # app is running and serving requests between startup and shutdown

    # ── Shutdown ────────────────────────────────────────────────
    await app.state.redis.close()
    app.state.sync_redis.close()
    await async_engine.dispose()
    logger.info("API shut down")


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="AI Feedback Jobs",
        description="Asynchronous AI code-review feedback for submissions, with retries, dead-lettering and admission control",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Register routers: each one adds its endpoints to the app
    app.include_router(health.router)
    app.include_router(submissions.router)
    app.include_router(feedback.router)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
