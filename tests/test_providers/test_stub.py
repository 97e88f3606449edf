"""Tests for the deterministic stub provider."""

import uuid

from models.enums import FeedbackSeverity, FeedbackType
from providers.base import FeedbackRequest
from providers.stub import StubFeedbackProvider


def _request(code_text):
    return FeedbackRequest(
        submission_id=uuid.uuid4(),
        classroom_task_id=None,
        language="python",
        code_text=code_text,
        original_length=len(code_text),
    )


def test_empty_code_is_a_syntax_error():
    items = StubFeedbackProvider().analyze(_request("   "))
    assert len(items) == 1
    assert items[0].type is FeedbackType.SYNTAX
    assert items[0].severity is FeedbackSeverity.ERROR
    assert items[0].message == "Code is empty."


def test_short_code_with_todo_gets_two_items():
    items = StubFeedbackProvider().analyze(_request("x = 1 # TODO"))
    assert [(i.type, i.severity) for i in items] == [
        (FeedbackType.STYLE, FeedbackSeverity.WARN),
        (FeedbackType.OTHER, FeedbackSeverity.INFO),
    ]
    assert items[0].tags == ["readability"]


def test_clean_code_gets_a_single_info_item():
    items = StubFeedbackProvider().analyze(_request("def add(a, b):\n    return a + b\n"))
    assert len(items) == 1
    assert items[0].message == "AI stub: no obvious issues detected."


def test_same_input_same_output():
    provider = StubFeedbackProvider()
    request = _request("print('hello world')  # TODO")
    assert provider.analyze(request) == provider.analyze(request)
