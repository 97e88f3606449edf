"""
Deterministic stand-in for a real model.

This is the default provider for local runs, demos and tests because:
- It never touches the network
- The same code always produces the same items

Rules:
    empty code          → SYNTAX / ERROR "Code is empty."
    fewer than 20 chars → STYLE / WARN
    contains "TODO"     → OTHER / INFO
    nothing matched     → OTHER / INFO "no obvious issues"
"""

from models.enums import FeedbackSeverity, FeedbackType
from providers.base import AbstractFeedbackProvider, FeedbackItem, FeedbackRequest
from providers.normalizer import normalize_feedback_items

SHORT_CODE_THRESHOLD = 20


class StubFeedbackProvider(AbstractFeedbackProvider):

    def analyze(self, request: FeedbackRequest) -> list[FeedbackItem]:
        code_text = request.code_text

        if not code_text.strip():
            return normalize_feedback_items([
                FeedbackItem(
                    type=FeedbackType.SYNTAX,
                    severity=FeedbackSeverity.ERROR,
                    message="Code is empty.",
                    tags=["validation"],
                )
            ])

        items: list[FeedbackItem] = []
        if len(code_text) < SHORT_CODE_THRESHOLD:
            items.append(FeedbackItem(
                type=FeedbackType.STYLE,
                severity=FeedbackSeverity.WARN,
                message="Code is very short; consider adding more detail.",
                tags=["readability"],
            ))

        if "TODO" in code_text:
            items.append(FeedbackItem(
                type=FeedbackType.OTHER,
                severity=FeedbackSeverity.INFO,
                message="Found TODO markers; remember to resolve them.",
                tags=["maintainability"],
            ))

        if not items:
            items.append(FeedbackItem(
                type=FeedbackType.OTHER,
                severity=FeedbackSeverity.INFO,
                message="AI stub: no obvious issues detected.",
                tags=["other"],
            ))

        return normalize_feedback_items(items)

    @property
    def provider_name(self) -> str:
        return "stub"
