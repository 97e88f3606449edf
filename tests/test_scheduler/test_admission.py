"""Tests for AdmissionController: global headroom and per classroom-task windows."""

import uuid
from datetime import timedelta

from models.enums import JobStatus
from models.job import FeedbackJob
from scheduler.admission import AdmissionController
from config.settings import settings


def _running_job(session, locked_at):
    session.add(FeedbackJob(
        submission_id=uuid.uuid4(),
        task_id=uuid.uuid4(),
        student_id=uuid.uuid4(),
        status=JobStatus.RUNNING.value,
        locked_at=locked_at,
        lock_owner="somewhere",
    ))


def test_headroom_counts_only_live_leases(session_factory, redis_client, clock):
    admission = AdmissionController(redis_client, global_ceiling=3, clock=clock)
    with session_factory() as session:
        _running_job(session, clock())
        _running_job(session, clock() - timedelta(seconds=settings.FEEDBACK_LEASE_TTL + 5))
        session.commit()

        assert admission.running_count(session) == 1
        assert admission.global_headroom(session) == 2


def test_window_allows_up_to_ceiling(redis_client, clock):
    admission = AdmissionController(redis_client, per_task_ceiling=2, clock=clock)
    scope = uuid.uuid4()

    assert admission.try_acquire(scope, "a")
    assert admission.try_acquire(scope, "b")
    assert not admission.try_acquire(scope, "c")
    assert admission.recent_starts(scope) == 2

    # other scopes have their own window
    assert admission.try_acquire(uuid.uuid4(), "d")


def test_window_slides(redis_client, clock):
    admission = AdmissionController(redis_client, per_task_ceiling=1, clock=clock)
    scope = uuid.uuid4()

    assert admission.try_acquire(scope, "a")
    clock.advance(30)
    assert not admission.try_acquire(scope, "b")
    clock.advance(31)
    assert admission.try_acquire(scope, "c")


def test_release_gives_the_slot_back(redis_client, clock):
    admission = AdmissionController(redis_client, per_task_ceiling=1, clock=clock)
    scope = uuid.uuid4()

    assert admission.try_acquire(scope, "a")
    admission.release(scope, "a")
    assert admission.try_acquire(scope, "b")


def test_jobs_without_classroom_task_share_one_scope(redis_client, clock):
    admission = AdmissionController(redis_client, per_task_ceiling=1, clock=clock)
    assert admission.try_acquire(None, "a")
    assert not admission.try_acquire(None, "b")


def test_allowance_is_the_smaller_ceiling(session_factory, redis_client, clock):
    admission = AdmissionController(redis_client, global_ceiling=2, per_task_ceiling=5, clock=clock)
    scope = uuid.uuid4()
    with session_factory() as session:
        assert admission.allowance(session, scope) == 2
        for token in ("a", "b", "c", "d"):
            admission.try_acquire(scope, token)
        assert admission.allowance(session, scope) == 1


def test_global_slots_are_capped_and_released(redis_client, clock):
    admission = AdmissionController(redis_client, global_ceiling=2, clock=clock)

    assert admission.try_acquire_slot("a")
    assert admission.try_acquire_slot("b")
    assert not admission.try_acquire_slot("c")
    assert admission.held_slots() == 2

    admission.release_slot("a")
    assert admission.try_acquire_slot("c")


def test_slots_are_shared_between_controllers(redis_client, clock):
    first = AdmissionController(redis_client, global_ceiling=1, clock=clock)
    second = AdmissionController(redis_client, global_ceiling=1, clock=clock)

    assert first.try_acquire_slot("a")
    assert not second.try_acquire_slot("b")


def test_abandoned_slot_expires_with_the_lease(redis_client, clock):
    admission = AdmissionController(redis_client, global_ceiling=1, clock=clock)
    assert admission.try_acquire_slot("a")

    clock.advance(settings.FEEDBACK_LEASE_TTL + 1)

    assert admission.held_slots() == 0
    assert admission.try_acquire_slot("b")


def test_headroom_counts_held_slots(session_factory, redis_client, clock):
    admission = AdmissionController(redis_client, global_ceiling=3, clock=clock)
    admission.try_acquire_slot("a")
    admission.try_acquire_slot("b")
    with session_factory() as session:
        _running_job(session, clock())
        session.commit()
        # the RUNNING row and the slots overlap; the larger count wins
        assert admission.global_headroom(session) == 1
