"""
Retry handler — owns every transition out of RUNNING.

Lifecycle:
    RUNNING → (success)                         → SUCCEEDED
    RUNNING → (failure, attempts+1 < max)       → PENDING, not_before = now + backoff
    RUNNING → (failure, attempts+1 >= max)      → DEAD (+ Redis dead-letter entry)

Every error code is retryable; DEAD is reached only by running out of attempts.

Why reset to PENDING instead of re-running right away?
Because the claimer already picks up PENDING jobs whose not_before has passed.
Setting not_before into the future is what schedules a retry.

Every transition is one conditional UPDATE guarded by
    id = :id AND status = 'RUNNING' AND lock_owner = :owner
If the lease was taken away (a stale-lease sweep reclaimed it while this
worker was still busy), the update matches nothing and the result is dropped.

The dead-letter queue (DLQ) is a Redis list mirroring DEAD jobs for ops
tooling. The job table stays the source of truth; a DEAD job only leaves DEAD
through an explicit ops requeue.
"""

import json
import logging
import random
from datetime import timedelta
from typing import Callable, Optional

from redis import Redis
from sqlalchemy import update
from sqlalchemy.orm import Session

from config.settings import settings
from models.base import utc_now
from models.enums import ErrorCode, JobStatus
from models.job import FeedbackJob
from scheduler.claimer import ClaimedJob
from worker.classifier import LastError

logger = logging.getLogger(__name__)

MAX_BACKOFF_EXPONENT = 20


class RetryHandler:

    REDIS_DLQ_KEY = "feedbackjobs:dead_letter"

    def __init__(
        self,
        redis_client: Redis,
        clock: Callable = utc_now,
        rng: Callable[[], float] = random.random,
    ):
        self._redis = redis_client
        self._clock = clock
        self._rng = rng

    def compute_backoff(self, attempts: int, code: ErrorCode) -> float:
        """
        Delay in seconds before attempt number `attempts + 1` may start.

        base * 2^(attempts-1), plus up to BACKOFF_JITTER of itself at random,
        capped at BACKOFF_MAX. Rate-limit failures wait at least
        RATE_LIMIT_MIN_BACKOFF. Non-decreasing in `attempts` and always > 0.
        """
        exponent = min(max(attempts - 1, 0), MAX_BACKOFF_EXPONENT)
        delay = settings.FEEDBACK_BACKOFF_BASE * (2 ** exponent)
        delay *= 1 + self._rng() * settings.FEEDBACK_BACKOFF_JITTER
        if code.is_rate_limit:
            delay = max(delay, settings.FEEDBACK_RATE_LIMIT_MIN_BACKOFF)
        return min(settings.FEEDBACK_BACKOFF_MAX, delay)

    def mark_succeeded(self, session: Session, job: ClaimedJob) -> bool:
        """Commit RUNNING → SUCCEEDED. Returns False if the lease was lost."""
        now = self._clock()
        result = session.execute(
            self._guarded(job).values(
                status=JobStatus.SUCCEEDED.value,
                not_before=None,
                locked_at=None,
                lock_owner=None,
                last_error=None,
                updated_at=now,
            )
        )
        session.commit()
        if result.rowcount != 1:
            logger.warning(f"Job {job.job_id} lost its lease before success could be recorded")
            return False
        logger.info(f"Job {job.job_id} succeeded (submission_id={job.submission_id})")
        return True

    def handle_failure(self, session: Session, job: ClaimedJob, error: LastError) -> Optional[JobStatus]:
        """
        Commit RUNNING → PENDING (retry) or RUNNING → DEAD.

        Args:
            session: an open DB session (rolled back by the caller after the failure)
            job: the claimed job, including the attempts it was claimed with
            error: the classified failure

        Returns:
            the new status, or None if the lease was lost and nothing changed
        """
        now = self._clock()
        next_attempts = job.attempts + 1

        if next_attempts >= job.max_attempts:
            status = JobStatus.DEAD
            values = dict(
                status=status.value,
                attempts=job.max_attempts,
                locked_at=None,
                lock_owner=None,
                last_error=error.to_dict(),
                updated_at=now,
            )
        else:
            status = JobStatus.PENDING
            delay = self.compute_backoff(next_attempts, error.code)
            values = dict(
                status=status.value,
                attempts=next_attempts,
                not_before=now + timedelta(seconds=delay),
                locked_at=None,
                lock_owner=None,
                last_error=error.to_dict(),
                updated_at=now,
            )

        result = session.execute(self._guarded(job).values(**values))
        if result.rowcount != 1:
            session.rollback()
            logger.warning(f"Job {job.job_id} lost its lease before failure could be recorded")
            return None
        session.commit()

        if status is JobStatus.DEAD:
            self._push_to_dead_letter(job, error, now)
            logger.warning(
                f"Job {job.job_id} exhausted attempts ({job.max_attempts}), "
                f"moved to dead-letter queue: {error.code.value}"
            )
        else:
            logger.info(
                f"Job {job.job_id} will be retried "
                f"({next_attempts}/{job.max_attempts}) after {delay:.1f}s: {error.code.value}"
            )
        return status

    @staticmethod
    def _guarded(job: ClaimedJob):
        return update(FeedbackJob).where(
            FeedbackJob.id == job.job_id,
            FeedbackJob.status == JobStatus.RUNNING.value,
            FeedbackJob.lock_owner == job.lock_owner,
        )

    def _push_to_dead_letter(self, job: ClaimedJob, error: LastError, failed_at) -> None:
        """Push a dead job's summary to the Redis dead-letter list."""
        dlq_entry = json.dumps({
            "job_id": str(job.job_id),
            "submission_id": str(job.submission_id),
            "classroom_task_id": str(job.classroom_task_id) if job.classroom_task_id else None,
            "attempts": job.max_attempts,
            "error": error.to_dict(),
            "failed_at": failed_at.isoformat(),
        })
        self._redis.rpush(self.REDIS_DLQ_KEY, dlq_entry)
