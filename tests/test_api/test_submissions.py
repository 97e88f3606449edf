"""
API tests for manual feedback requests and the public status read.

Submissions are inserted straight into the database (their creation belongs
to another module); everything else goes through the HTTP client.
"""

import uuid

import pytest
from sqlalchemy import func, select

from models.job import FeedbackJob


@pytest.mark.asyncio
async def test_request_feedback_creates_pending_job(client, make_submission):
    submission = make_submission()

    response = await client.post(f"/submissions/{submission.id}/ai-feedback/request")

    assert response.status_code == 200
    data = response.json()
    assert data["submission_id"] == str(submission.id)
    assert data["status"] == "PENDING"
    assert data["ai_feedback_status"] == "PENDING"
    assert data["job_id"]


@pytest.mark.asyncio
async def test_request_feedback_twice_returns_same_job(client, make_submission, session_factory):
    submission = make_submission()

    first = await client.post(
        f"/submissions/{submission.id}/ai-feedback/request", json={"reason": "first look"}
    )
    second = await client.post(f"/submissions/{submission.id}/ai-feedback/request")

    assert first.json()["job_id"] == second.json()["job_id"]
    with session_factory() as session:
        count = session.execute(
            select(func.count(FeedbackJob.id)).where(FeedbackJob.submission_id == submission.id)
        ).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_request_feedback_unknown_submission(client):
    response = await client.post(f"/submissions/{uuid.uuid4()}/ai-feedback/request")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_request_feedback_reason_too_long(client, make_submission):
    submission = make_submission()
    response = await client.post(
        f"/submissions/{submission.id}/ai-feedback/request", json={"reason": "x" * 201}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_statuses_not_requested_vs_pending(client, make_submission):
    """A submission without a job is NOT_REQUESTED, which is not the same as PENDING."""
    requested = make_submission()
    untouched = make_submission()
    await client.post(f"/submissions/{requested.id}/ai-feedback/request")

    response = await client.get(
        "/ai-feedback/statuses",
        params=[("submission_id", str(requested.id)), ("submission_id", str(untouched.id))],
    )

    assert response.status_code == 200
    statuses = response.json()["statuses"]
    assert statuses[str(requested.id)] == "PENDING"
    assert statuses[str(untouched.id)] == "NOT_REQUESTED"


@pytest.mark.asyncio
async def test_statuses_without_ids(client):
    response = await client.get("/ai-feedback/statuses")
    assert response.status_code == 200
    assert response.json()["statuses"] == {}
