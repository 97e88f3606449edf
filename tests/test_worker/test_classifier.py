"""Tests for failure classification."""

from concurrent.futures import TimeoutError as FuturesTimeoutError

import httpx

from models.enums import ErrorCode
from providers.base import FeedbackProviderError
from worker.classifier import MAX_MESSAGE_CHARS, classify_failure


def test_provider_error_keeps_its_code():
    error = classify_failure(FeedbackProviderError(ErrorCode.RATE_LIMIT_UPSTREAM, "slow down"))
    assert error.code is ErrorCode.RATE_LIMIT_UPSTREAM
    assert error.message == "slow down"


def test_timeouts_are_timeout():
    assert classify_failure(FuturesTimeoutError()).code is ErrorCode.TIMEOUT
    assert classify_failure(httpx.ReadTimeout("read timed out")).code is ErrorCode.TIMEOUT


def test_anything_else_is_unknown():
    error = classify_failure(KeyError("choices"))
    assert error.code is ErrorCode.UNKNOWN
    assert error.message.startswith("AI_FEEDBACK_PROVIDER: UNKNOWN")


def test_stored_message_is_truncated():
    error = classify_failure(ValueError("x" * 5000))
    assert len(error.to_dict()["message"]) == MAX_MESSAGE_CHARS
    assert error.to_dict()["code"] == "UNKNOWN"
