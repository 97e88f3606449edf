"""Tests for request building and prompt text."""

import uuid

from models.submission import Submission
from providers.prompts import build_feedback_request, build_system_prompt, build_user_prompt


def _submission(code_text):
    return Submission(
        id=uuid.uuid4(),
        task_id=uuid.uuid4(),
        classroom_task_id=None,
        student_id=uuid.uuid4(),
        attempt_no=2,
        code_text=code_text,
        language="java",
    )


def test_oversized_code_is_truncated_not_rejected():
    request = build_feedback_request(_submission("a" * 50), max_code_chars=10)
    assert request.code_text == "a" * 10
    assert request.original_length == 50
    assert request.was_truncated


def test_small_code_is_untouched():
    request = build_feedback_request(_submission("int x = 1;"), max_code_chars=100)
    assert request.code_text == "int x = 1;"
    assert not request.was_truncated


def test_user_prompt_reports_truncation():
    request = build_feedback_request(_submission("b" * 30), max_code_chars=5)
    prompt = build_user_prompt(request)
    assert "CodeTruncated: true, OriginalLength: 30, UsedLength: 5" in prompt
    assert "Language: java" in prompt
    assert "ClassroomTaskId: n/a" in prompt


def test_system_prompt_lists_the_protocol():
    prompt = build_system_prompt()
    assert "SYNTAX|STYLE|DESIGN|BUG|PERFORMANCE|SECURITY|OTHER" in prompt
    assert "INFO|WARN|ERROR" in prompt
