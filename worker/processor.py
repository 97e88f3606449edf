"""
Feedback processor — runs one bounded batch of feedback jobs.

This is the code that actually DOES THE WORK. A scheduler tick or an ops
action calls processor.process_once(batch_size), and this method handles the
full round:

    1. Validate batch_size (a bad value is a usage error, never clamped)
    2. Sweep stale leases left by crashed workers
    3. Ask the admission controller for global headroom
    4. Claim up to min(batch_size, headroom) jobs, each reserving a global
       slot and a per-classroom-task window entry before its conditional UPDATE
    5. Process the claimed jobs concurrently, each in its own thread:
       load submission → build request (truncated) → provider call under a
       timeout → persist feedback → SUCCEEDED
    6. On any failure: classify it and let RetryHandler decide retry vs DEAD

Thread safety:
- Each job gets its OWN database session (created and closed within)
- Providers are stateless per call
- Every state change is a lock_owner-guarded UPDATE
- A job's global slot is released when its provider call has returned,
  even if that is after the job already timed out
So a slow or failing job never blocks or aborts its siblings.

The processor is stateless between calls: no background thread lives here.
Run it from FeedbackWorker (worker/runner.py) or the ops endpoint.
"""

import logging
import os
import socket
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from redis import Redis
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from models.base import utc_now
from models.enums import JobStatus
from models.submission import Submission
from providers.base import AbstractFeedbackProvider, FeedbackRequest
from providers.prompts import build_feedback_request
from providers.registry import get_provider
from scheduler.admission import AdmissionController
from scheduler.claimer import ClaimedJob, JobClaimer
from scheduler.sweeper import StaleLeaseSweeper
from services.feedback_store import save_feedback
from worker.classifier import classify_failure
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


class InvalidBatchSizeError(ValueError):
    pass


class SubmissionNotFoundError(LookupError):
    pass


@dataclass
class ProcessResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    dead: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class FeedbackProcessor:

    LOCK_OWNER_PREFIX = "ai-feedback-processor"

    def __init__(
        self,
        db_session_factory: sessionmaker,
        redis_client: Redis,
        provider: Optional[AbstractFeedbackProvider] = None,
        admission: Optional[AdmissionController] = None,
        clock: Callable = utc_now,
    ):
        self._db_session_factory = db_session_factory
        self._provider = provider or get_provider()
        self._admission = admission or AdmissionController(redis_client, clock=clock)
        self._claimer = JobClaimer(db_session_factory, clock=clock)
        self._retry_handler = RetryHandler(redis_client, clock=clock)
        self._sweeper = StaleLeaseSweeper(db_session_factory, self._retry_handler, clock=clock)

    def process_once(self, batch_size: Optional[int] = None) -> ProcessResult:
        if batch_size is None:
            batch_size = settings.FEEDBACK_DEFAULT_BATCH_SIZE
        if (
            isinstance(batch_size, bool)
            or not isinstance(batch_size, int)
            or batch_size <= 0
            or batch_size > settings.FEEDBACK_MAX_BATCH_SIZE
        ):
            raise InvalidBatchSizeError(
                f"batch_size must be an integer between 1 and {settings.FEEDBACK_MAX_BATCH_SIZE}, "
                f"got {batch_size!r}"
            )

        result = ProcessResult()
        self._sweeper.sweep()

        with self._db_session_factory() as session:
            headroom = self._admission.global_headroom(session)
        if headroom <= 0:
            logger.debug("No global headroom (ceiling reached), skipping round")
            return result

        lock_owner = (
            f"{self.LOCK_OWNER_PREFIX}:{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        )
        claimed = self._claimer.claim_batch(
            lock_owner, min(batch_size, headroom), admission=self._admission
        )
        if not claimed:
            return result
        logger.info(f"Claimed {len(claimed)} feedback jobs (owner={lock_owner})")

        with ThreadPoolExecutor(
            max_workers=len(claimed), thread_name_prefix="feedback-worker"
        ) as pool:
            futures = {pool.submit(self._process_job, job): job for job in claimed}
            for future in as_completed(futures):
                result.processed += 1
                try:
                    outcome = future.result()
                except Exception as e:
                    # the job stays RUNNING; the stale-lease sweep will recover it
                    logger.error(
                        f"Unhandled error while processing job {futures[future].job_id}: {e}",
                        exc_info=True,
                    )
                    continue
                if outcome is JobStatus.SUCCEEDED:
                    result.succeeded += 1
                elif outcome is JobStatus.DEAD:
                    result.dead += 1
                elif outcome is JobStatus.PENDING:
                    result.failed += 1

        logger.info(
            f"Processed feedback batch: processed={result.processed}, succeeded={result.succeeded}, "
            f"failed={result.failed}, dead={result.dead}"
        )
        return result

    def _process_job(self, job: ClaimedJob) -> Optional[JobStatus]:
        """
        Drive one claimed job to its next state.

        Returns the status written, or None if the lease was lost meanwhile.
        Failures are never raised from here; they become a retry or DEAD.
        """
        call: Optional[Future] = None
        try:
            with self._db_session_factory() as session:
                try:
                    submission = session.get(Submission, job.submission_id)
                    if submission is None:
                        raise SubmissionNotFoundError(f"Submission {job.submission_id} not found")

                    request = build_feedback_request(submission, settings.FEEDBACK_MAX_CODE_CHARS)
                    call = self._start_provider_call(request)
                    items = call.result(timeout=settings.FEEDBACK_PROVIDER_TIMEOUT)
                    save_feedback(session, job.submission_id, items)
                    if self._retry_handler.mark_succeeded(session, job):
                        return JobStatus.SUCCEEDED
                    return None

                except Exception as e:
                    session.rollback()
                    error = classify_failure(e)
                    logger.warning(
                        f"Job {job.job_id} attempt {job.attempts + 1}/{job.max_attempts} failed: "
                        f"code={error.code.value}, submission_id={job.submission_id}"
                    )
                    return self._retry_handler.handle_failure(session, job, error)
        finally:
            self._release_slot(job, call)

    def _start_provider_call(self, request: FeedbackRequest) -> Future:
        """
        Start one provider call on its own thread, with a deadline of
        FEEDBACK_PROVIDER_TIMEOUT from now.

        The caller waits on the future with the same timeout, so a hung
        provider costs this job its attempt (TimeoutError → TIMEOUT) instead of
        holding the batch hostage. The abandoned thread is left to finish.
        """
        request.deadline = time.monotonic() + settings.FEEDBACK_PROVIDER_TIMEOUT
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="feedback-provider")
        try:
            return executor.submit(self._provider.analyze, request)
        finally:
            executor.shutdown(wait=False)

    def _release_slot(self, job: ClaimedJob, call: Optional[Future]) -> None:
        """
        Give the job's global slot back once nothing runs for it any more.

        A call that outlived its timeout is still using the provider, so its
        slot is only released when its thread returns.
        """
        if job.slot_token is None:
            return
        if call is None:
            self._admission.release_slot(job.slot_token)
        else:
            call.add_done_callback(lambda _: self._admission.release_slot(job.slot_token))
