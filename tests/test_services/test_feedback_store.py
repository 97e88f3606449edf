"""Tests for idempotent feedback persistence."""

from sqlalchemy import func, select

from models.enums import FeedbackSeverity, FeedbackType
from models.submission import Feedback
from providers.base import FeedbackItem
from services.feedback_store import save_feedback


def _items():
    return [
        FeedbackItem(FeedbackType.STYLE, FeedbackSeverity.WARN, "Rename x.", tags=["naming"]),
        FeedbackItem(FeedbackType.BUG, FeedbackSeverity.ERROR, "Off by one."),
    ]


def _count(session, submission_id):
    return session.execute(
        select(func.count(Feedback.id)).where(Feedback.submission_id == submission_id)
    ).scalar()


def test_saves_items(session_factory, make_submission):
    submission = make_submission()
    with session_factory() as session:
        assert save_feedback(session, submission.id, _items()) == 2
        session.commit()
        assert _count(session, submission.id) == 2
        stored = session.execute(
            select(Feedback).where(Feedback.message == "Rename x.")
        ).scalar_one()
    assert stored.source == "AI"
    assert stored.tags == ["naming"]


def test_saving_twice_adds_nothing(session_factory, make_submission):
    submission = make_submission()
    with session_factory() as session:
        save_feedback(session, submission.id, _items())
        session.commit()
    with session_factory() as session:
        assert save_feedback(session, submission.id, _items()) == 0
        session.commit()
        assert _count(session, submission.id) == 2


def test_duplicates_within_one_batch_are_collapsed(session_factory, make_submission):
    submission = make_submission()
    with session_factory() as session:
        assert save_feedback(session, submission.id, _items() + _items()) == 2
        session.commit()
        assert _count(session, submission.id) == 2
