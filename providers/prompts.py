"""
Request building and prompt text for model-backed providers.

build_feedback_request() is where submission content gets truncated to the
configured character ceiling. Oversized code is never rejected — the model
sees the first N characters and is told the rest was cut.
"""

import json

from models.enums import FeedbackSeverity, FeedbackType
from models.submission import Submission
from providers.base import FeedbackRequest
from providers.normalizer import FEEDBACK_TAGS

ALLOWED_ROOT_KEYS = ("items", "meta")
ALLOWED_ITEM_KEYS = ("type", "severity", "message", "suggestion", "tags", "scoreHint")

SCHEMA_EXAMPLE = {
    "items": [
        {
            "type": FeedbackType.STYLE.value,
            "severity": FeedbackSeverity.WARN.value,
            "message": "Use clearer variable names.",
            "tags": ["readability"],
        }
    ],
    "meta": {"language": "python"},
}


def build_feedback_request(submission: Submission, max_code_chars: int) -> FeedbackRequest:
    code_text = submission.code_text or ""
    return FeedbackRequest(
        submission_id=submission.id,
        classroom_task_id=submission.classroom_task_id,
        language=submission.language or "unknown",
        code_text=code_text[:max_code_chars],
        original_length=len(code_text),
        attempt_no=submission.attempt_no,
        ai_usage_declaration=submission.ai_usage_declaration,
    )


def build_system_prompt() -> str:
    return "\n".join([
        "You are EduForge AI feedback provider.",
        'Return ONLY a single JSON object; first character "{", last character "}".',
        f"Root keys allowed: {', '.join(ALLOWED_ROOT_KEYS)}. No other root keys.",
        "meta is optional; if present it must be an object (e.g., language, wasTruncated, model).",
        "items must be an array of objects.",
        f"Item keys allowed: {', '.join(ALLOWED_ITEM_KEYS)}. No other item keys.",
        f"type must be one of: {'|'.join(t.value for t in FeedbackType)}.",
        f"severity must be one of: {'|'.join(s.value for s in FeedbackSeverity)}.",
        "message must be a non-empty string.",
        f"tags must come from this list only: {', '.join(FEEDBACK_TAGS)}.",
        "No markdown, no code fences, no explanations, no extra fields.",
        'If no issues, return {"items":[]}.',
        f"Schema example: {json.dumps(SCHEMA_EXAMPLE)}",
    ])


def build_user_prompt(request: FeedbackRequest) -> str:
    return "\n".join([
        "Task: analyze the student submission and return JSON feedback items only.",
        f"SubmissionId: {request.submission_id}",
        f"ClassroomTaskId: {request.classroom_task_id or 'n/a'}",
        f"Language: {request.language}",
        f"AttemptNo: {request.attempt_no or 'n/a'}",
        f"AIUsageDeclaration: {request.ai_usage_declaration or 'n/a'}",
        f"CodeTruncated: {'true' if request.was_truncated else 'false'}, "
        f"OriginalLength: {request.original_length}, UsedLength: {len(request.code_text)}",
        "Code:",
        request.code_text,
    ])
