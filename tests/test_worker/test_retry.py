"""
Tests for the RetryHandler.

These test the decision logic:
- If attempts remain → job goes back to PENDING with a future not_before
- If attempts are exhausted → job goes to DEAD + dead-letter queue
- If the lease was lost → nothing changes
"""

import json
import uuid
from datetime import timedelta

import pytest

from config.settings import settings
from models.enums import ErrorCode, JobStatus
from models.job import FeedbackJob
from scheduler.claimer import ClaimedJob
from worker.classifier import LastError
from worker.retry import RetryHandler


def _create_running_job(session_factory, clock, attempts=0, max_attempts=3, owner="worker-a"):
    """Insert a RUNNING job and return the ClaimedJob its owner would hold."""
    job = FeedbackJob(
        id=uuid.uuid4(),
        submission_id=uuid.uuid4(),
        task_id=uuid.uuid4(),
        student_id=uuid.uuid4(),
        status=JobStatus.RUNNING.value,
        attempts=attempts,
        max_attempts=max_attempts,
        locked_at=clock(),
        lock_owner=owner,
    )
    with session_factory() as session:
        session.add(job)
        session.commit()
    return ClaimedJob(
        job_id=job.id,
        submission_id=job.submission_id,
        classroom_task_id=None,
        attempts=attempts,
        max_attempts=max_attempts,
        lock_owner=owner,
        locked_at=clock(),
    )


def _load(session_factory, job_id):
    with session_factory() as session:
        return session.get(FeedbackJob, job_id)


def _timeout():
    return LastError(code=ErrorCode.TIMEOUT, message="AI_FEEDBACK_PROVIDER: TIMEOUT")


def test_failure_with_attempts_left_goes_back_to_pending(session_factory, redis_client, clock):
    claimed = _create_running_job(session_factory, clock, attempts=0)
    handler = RetryHandler(redis_client, clock=clock, rng=lambda: 0.0)

    with session_factory() as session:
        status = handler.handle_failure(session, claimed, _timeout())

    assert status is JobStatus.PENDING
    job = _load(session_factory, claimed.job_id)
    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 1
    assert job.lock_owner is None and job.locked_at is None
    assert job.last_error == {"code": "TIMEOUT", "message": "AI_FEEDBACK_PROVIDER: TIMEOUT"}
    expected = (clock() + timedelta(seconds=settings.FEEDBACK_BACKOFF_BASE)).replace(tzinfo=None)
    assert job.not_before.replace(tzinfo=None) == expected


def test_last_attempt_goes_dead_and_hits_dead_letter(session_factory, redis_client, clock):
    claimed = _create_running_job(session_factory, clock, attempts=2, max_attempts=3)
    handler = RetryHandler(redis_client, clock=clock)

    with session_factory() as session:
        status = handler.handle_failure(session, claimed, _timeout())

    assert status is JobStatus.DEAD
    job = _load(session_factory, claimed.job_id)
    assert job.status == JobStatus.DEAD.value
    assert job.attempts == job.max_attempts == 3

    assert redis_client.llen(RetryHandler.REDIS_DLQ_KEY) == 1
    entry = json.loads(redis_client.lindex(RetryHandler.REDIS_DLQ_KEY, 0))
    assert entry["job_id"] == str(claimed.job_id)
    assert entry["error"]["code"] == "TIMEOUT"


def test_lost_lease_changes_nothing(session_factory, redis_client, clock):
    claimed = _create_running_job(session_factory, clock, owner="worker-a")
    stolen = ClaimedJob(**{**claimed.__dict__, "lock_owner": "worker-b"})
    handler = RetryHandler(redis_client, clock=clock)

    with session_factory() as session:
        assert handler.handle_failure(session, stolen, _timeout()) is None
        assert handler.mark_succeeded(session, stolen) is False

    job = _load(session_factory, claimed.job_id)
    assert job.status == JobStatus.RUNNING.value
    assert job.attempts == 0
    assert redis_client.llen(RetryHandler.REDIS_DLQ_KEY) == 0


def test_mark_succeeded_clears_lease_and_error(session_factory, redis_client, clock):
    claimed = _create_running_job(session_factory, clock)
    handler = RetryHandler(redis_client, clock=clock)

    with session_factory() as session:
        assert handler.mark_succeeded(session, claimed) is True

    job = _load(session_factory, claimed.job_id)
    assert job.status == JobStatus.SUCCEEDED.value
    assert job.lock_owner is None and job.locked_at is None
    assert job.last_error is None


@pytest.mark.parametrize("code", list(ErrorCode))
def test_backoff_is_positive_and_bounded(redis_client, code):
    handler = RetryHandler(redis_client, rng=lambda: 1.0)
    for attempts in range(1, 40):
        delay = handler.compute_backoff(attempts, code)
        assert 0 < delay <= settings.FEEDBACK_BACKOFF_MAX


def test_backoff_is_non_decreasing(redis_client):
    handler = RetryHandler(redis_client, rng=lambda: 0.0)
    delays = [handler.compute_backoff(a, ErrorCode.PROVIDER_ERROR) for a in range(1, 12)]
    assert delays == sorted(delays)
    assert delays[0] == settings.FEEDBACK_BACKOFF_BASE
    assert delays[1] == settings.FEEDBACK_BACKOFF_BASE * 2
    assert delays[-1] == settings.FEEDBACK_BACKOFF_MAX


def test_rate_limit_backoff_has_a_floor(redis_client, monkeypatch):
    monkeypatch.setattr(settings, "FEEDBACK_BACKOFF_BASE", 1.0)
    handler = RetryHandler(redis_client, rng=lambda: 0.0)

    assert handler.compute_backoff(1, ErrorCode.TIMEOUT) == 1.0
    assert handler.compute_backoff(1, ErrorCode.RATE_LIMIT_UPSTREAM) == settings.FEEDBACK_RATE_LIMIT_MIN_BACKOFF
