"""Deterministic local provider used when no real provider is configured."""

from __future__ import annotations

from ai_feedback.jobs.models import FeedbackItem, FeedbackSeverity, FeedbackType, SubjectContent
from ai_feedback.jobs.protocol import normalize_items

SHORT_CODE_CHARS = 20


class StubFeedbackProvider:
    """Rule-based provider producing a few fixed hints without network calls."""

    def analyze(self, subject: SubjectContent) -> list[FeedbackItem]:
        code_text = subject.code_text or ""
        if not code_text.strip():
            return normalize_items(
                [
                    FeedbackItem(
                        type=FeedbackType.SYNTAX,
                        severity=FeedbackSeverity.ERROR,
                        message="Code is empty.",
                        tags=["validation"],
                    ),
                ],
            )

        items: list[FeedbackItem] = []
        if len(code_text) < SHORT_CODE_CHARS:
            items.append(
                FeedbackItem(
                    type=FeedbackType.STYLE,
                    severity=FeedbackSeverity.WARN,
                    message="Code is very short; consider adding more detail.",
                    tags=["readability"],
                ),
            )
        if "TODO" in code_text:
            items.append(
                FeedbackItem(
                    type=FeedbackType.OTHER,
                    severity=FeedbackSeverity.INFO,
                    message="Found TODO markers; remember to resolve them.",
                    tags=["maintainability"],
                ),
            )
        if not items:
            items.append(
                FeedbackItem(
                    type=FeedbackType.OTHER,
                    severity=FeedbackSeverity.INFO,
                    message="Stub provider: no obvious issues detected.",
                    tags=["other"],
                ),
            )
        return normalize_items(items)
