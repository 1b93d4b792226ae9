"""Provider interface for feedback generation."""

from __future__ import annotations

from typing import Protocol

from ai_feedback.jobs.models import FeedbackItem, SubjectContent


class FeedbackProvider(Protocol):
    """Protocol implemented by feedback providers.

    Implementations raise `FeedbackProviderError` for every failure so the
    processor only has to consult the error code and retryable bit.
    """

    def analyze(self, subject: SubjectContent) -> list[FeedbackItem]:
        """Return normalized feedback items for one subject."""
