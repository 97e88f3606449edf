"""
Worker process entry point.

This is a SEPARATE process from the FastAPI API server. It runs one component:

    FeedbackWorker — every FEEDBACK_WORKER_INTERVAL seconds, sweeps stale
    leases, claims a batch of PENDING feedback jobs within the admission
    ceilings, and runs them against the configured provider

The worker runs as a daemon thread. The main thread just waits for
Ctrl+C (SIGINT) or a kill signal (SIGTERM) to shut down gracefully.

To run:
    python -m worker.main

Running several worker processes is safe: claims are conditional UPDATEs and
the admission ceilings are shared through Postgres and Redis.
"""

import logging
import signal
import threading

from redis import Redis

from config.settings import settings
from models.base import Base, sync_engine, SyncSessionLocal
from worker.processor import FeedbackProcessor
from worker.runner import FeedbackWorker

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    if not settings.FEEDBACK_WORKER_ENABLED:
        logger.info("FEEDBACK_WORKER_ENABLED is false, nothing to do")
        return

    # Safe to call repeatedly; a no-op once the API has created the tables.
    logger.info("Ensuring database tables exist...")
    Base.metadata.create_all(sync_engine)

    redis_client = Redis.from_url(settings.redis_url)

    processor = FeedbackProcessor(SyncSessionLocal, redis_client)
    worker = FeedbackWorker(processor)
    worker.start()

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    shutdown_event = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info(f"Worker process running (provider={settings.FEEDBACK_PROVIDER}). Press Ctrl+C to stop.")
    shutdown_event.wait()

    worker.stop(timeout=settings.FEEDBACK_PROVIDER_TIMEOUT + 5)
    logger.info("Worker process exited")


if __name__ == "__main__":
    main()
