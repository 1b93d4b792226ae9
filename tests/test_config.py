from __future__ import annotations

from pathlib import Path

import allure
import pytest

from ai_feedback.config import (
    PROVIDER_OPENROUTER,
    GuardSettings,
    JobSettings,
    ProviderSettings,
    Settings,
)
from ai_feedback.jobs.providers import (
    OpenRouterFeedbackProvider,
    StubFeedbackProvider,
    build_provider,
)

pytestmark = [
    allure.epic("Feedback Jobs"),
    allure.feature("Configuration"),
]


def test_defaults_without_environment() -> None:
    settings = Settings.from_env()

    assert settings.db_path == Path(".ai_feedback.db")
    assert settings.guards.max_concurrency == 2
    assert settings.guards.max_per_group_per_minute == 30
    assert settings.provider.provider == "stub"
    assert settings.provider.real_enabled is False
    assert settings.provider.model == "openai/gpt-4o-mini"
    assert settings.provider.timeout_ms == 15_000
    assert settings.provider.max_retries == 2
    assert settings.jobs.max_attempts == 3
    assert settings.jobs.lock_ttl_seconds == 300
    assert settings.jobs.batch_size == 5
    assert settings.worker.enabled is False
    assert settings.worker.interval_ms == 3_000
    settings.validate()


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AI_FEEDBACK_DB_PATH", str(tmp_path / "jobs.db"))
    monkeypatch.setenv("AI_FEEDBACK_MAX_CONCURRENCY", "4")
    monkeypatch.setenv("AI_FEEDBACK_PROVIDER", " OpenRouter ")
    monkeypatch.setenv("AI_FEEDBACK_REAL_ENABLED", "yes")
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-live")
    monkeypatch.setenv("OPENROUTER_TIMEOUT_MS", "2500")
    monkeypatch.setenv("AI_FEEDBACK_WORKER_ENABLED", "1")
    monkeypatch.setenv("AI_FEEDBACK_WORKER_INTERVAL_MS", "500")

    settings = Settings.from_env()

    assert settings.db_path == tmp_path / "jobs.db"
    assert settings.guards.max_concurrency == 4
    assert settings.provider.provider == PROVIDER_OPENROUTER
    assert settings.provider.real_enabled is True
    assert settings.provider.api_key == "sk-live"
    assert settings.provider.timeout_ms == 2500
    assert settings.worker.enabled is True
    assert settings.worker.interval_ms == 500
    settings.validate()


def test_explicit_db_path_wins(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AI_FEEDBACK_DB_PATH", "ignored.db")

    assert Settings.from_env(db_path=tmp_path / "x.db").db_path == tmp_path / "x.db"


def test_invalid_boolean_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AI_FEEDBACK_REAL_ENABLED", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for AI_FEEDBACK_REAL_ENABLED"):
        Settings.from_env()


def test_invalid_integer_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AI_FEEDBACK_MAX_ITEMS", "lots")

    with pytest.raises(ValueError, match="Invalid integer value for AI_FEEDBACK_MAX_ITEMS"):
        Settings.from_env()


def test_openrouter_real_mode_requires_api_key() -> None:
    settings = Settings(
        provider=ProviderSettings(provider=PROVIDER_OPENROUTER, real_enabled=True),
    )

    with pytest.raises(ValueError, match="OPENROUTER_API_KEY is required"):
        settings.validate()


def test_openrouter_without_real_mode_needs_no_key() -> None:
    Settings(provider=ProviderSettings(provider=PROVIDER_OPENROUTER)).validate()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(guards=GuardSettings(max_concurrency=0)), "AI_FEEDBACK_MAX_CONCURRENCY"),
        (Settings(guards=GuardSettings(max_concurrency=21)), "AI_FEEDBACK_MAX_CONCURRENCY"),
        (
            Settings(guards=GuardSettings(max_per_group_per_minute=601)),
            "AI_FEEDBACK_MAX_PER_GROUP_PER_MINUTE",
        ),
        (Settings(provider=ProviderSettings(provider="magic")), "AI_FEEDBACK_PROVIDER"),
        (Settings(provider=ProviderSettings(max_code_chars=499)), "AI_FEEDBACK_MAX_CODE_CHARS"),
        (Settings(provider=ProviderSettings(max_items=101)), "AI_FEEDBACK_MAX_ITEMS"),
        (Settings(provider=ProviderSettings(timeout_ms=999)), "OPENROUTER_TIMEOUT_MS"),
        (Settings(provider=ProviderSettings(max_retries=-1)), "OPENROUTER_MAX_RETRIES"),
        (Settings(jobs=JobSettings(max_attempts=0)), "AI_FEEDBACK_MAX_ATTEMPTS"),
        (Settings(jobs=JobSettings(batch_size=0)), "AI_FEEDBACK_BATCH_SIZE"),
        (
            Settings(jobs=JobSettings(base_backoff_seconds=60, max_backoff_seconds=30)),
            "AI_FEEDBACK_MAX_BACKOFF_SECONDS",
        ),
    ],
)
def test_validate_rejects_out_of_range_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_build_provider_follows_selection() -> None:
    assert isinstance(build_provider(ProviderSettings()), StubFeedbackProvider)

    provider = build_provider(
        ProviderSettings(
            provider=PROVIDER_OPENROUTER,
            api_key="sk-test",
            real_enabled=True,
            timeout_ms=2_000,
            max_items=3,
        ),
    )
    assert isinstance(provider, OpenRouterFeedbackProvider)
    try:
        assert provider.timeout_seconds == 2.0
        assert provider.max_items == 3
        assert provider.api_key == "sk-test"
    finally:
        provider.close()
