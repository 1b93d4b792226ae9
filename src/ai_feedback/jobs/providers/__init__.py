"""Feedback provider implementations."""

from ai_feedback.config import PROVIDER_OPENROUTER, ProviderSettings
from ai_feedback.jobs.providers.base import FeedbackProvider
from ai_feedback.jobs.providers.openrouter import OpenRouterFeedbackProvider
from ai_feedback.jobs.providers.stub import StubFeedbackProvider


def build_provider(settings: ProviderSettings) -> FeedbackProvider:
    """Construct the provider selected by configuration."""

    if settings.provider == PROVIDER_OPENROUTER:
        return OpenRouterFeedbackProvider(
            api_key=settings.api_key,
            real_enabled=settings.real_enabled,
            base_url=settings.base_url,
            model=settings.model,
            timeout_seconds=settings.timeout_ms / 1000.0,
            max_retries=settings.max_retries,
            max_code_chars=settings.max_code_chars,
            max_items=settings.max_items,
            http_referer=settings.http_referer,
            x_title=settings.x_title,
        )
    return StubFeedbackProvider()


__all__ = [
    "FeedbackProvider",
    "OpenRouterFeedbackProvider",
    "StubFeedbackProvider",
    "build_provider",
]
