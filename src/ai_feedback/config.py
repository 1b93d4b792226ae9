"""Runtime configuration for the feedback job pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

PROVIDER_STUB = "stub"
PROVIDER_OPENROUTER = "openrouter"
SUPPORTED_PROVIDERS = (PROVIDER_STUB, PROVIDER_OPENROUTER)


@dataclass(slots=True)
class GuardSettings:
    """Process-local admission control settings."""

    max_concurrency: int = 2
    max_per_group_per_minute: int = 30


@dataclass(slots=True)
class ProviderSettings:
    """Feedback provider selection and OpenRouter client settings."""

    provider: str = PROVIDER_STUB
    real_enabled: bool = False
    max_code_chars: int = 12_000
    max_items: int = 20
    api_key: str | None = None
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "openai/gpt-4o-mini"
    timeout_ms: int = 15_000
    max_retries: int = 2
    http_referer: str = "https://ai-feedback.local"
    x_title: str = "ai-feedback"


@dataclass(slots=True)
class JobSettings:
    """Retry, lock and batch policy for job processing."""

    max_attempts: int = 3
    lock_ttl_seconds: int = 300
    base_backoff_seconds: int = 30
    max_backoff_seconds: int = 600
    batch_size: int = 5


@dataclass(slots=True)
class WorkerSettings:
    """Embedded worker loop settings."""

    enabled: bool = False
    interval_ms: int = 3_000


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".ai_feedback.db")
    sqlite_busy_timeout_ms: int = 5_000
    guards: GuardSettings = field(default_factory=GuardSettings)
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    jobs: JobSettings = field(default_factory=JobSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("AI_FEEDBACK_DB_PATH", ".ai_feedback.db")),
            sqlite_busy_timeout_ms=_env_int("AI_FEEDBACK_SQLITE_BUSY_TIMEOUT_MS", 5_000),
            guards=GuardSettings(
                max_concurrency=_env_int("AI_FEEDBACK_MAX_CONCURRENCY", 2),
                max_per_group_per_minute=_env_int("AI_FEEDBACK_MAX_PER_GROUP_PER_MINUTE", 30),
            ),
            provider=ProviderSettings(
                provider=os.getenv("AI_FEEDBACK_PROVIDER", PROVIDER_STUB).strip().lower(),
                real_enabled=_env_bool("AI_FEEDBACK_REAL_ENABLED", default=False),
                max_code_chars=_env_int("AI_FEEDBACK_MAX_CODE_CHARS", 12_000),
                max_items=_env_int("AI_FEEDBACK_MAX_ITEMS", 20),
                api_key=(os.getenv("OPENROUTER_API_KEY") or "").strip() or None,
                base_url=os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
                model=os.getenv("OPENROUTER_MODEL", "openai/gpt-4o-mini"),
                timeout_ms=_env_int("OPENROUTER_TIMEOUT_MS", 15_000),
                max_retries=_env_int("OPENROUTER_MAX_RETRIES", 2),
                http_referer=os.getenv("OPENROUTER_HTTP_REFERER", "https://ai-feedback.local"),
                x_title=os.getenv("OPENROUTER_X_TITLE", "ai-feedback"),
            ),
            jobs=JobSettings(
                max_attempts=_env_int("AI_FEEDBACK_MAX_ATTEMPTS", 3),
                lock_ttl_seconds=_env_int("AI_FEEDBACK_LOCK_TTL_SECONDS", 300),
                base_backoff_seconds=_env_int("AI_FEEDBACK_BASE_BACKOFF_SECONDS", 30),
                max_backoff_seconds=_env_int("AI_FEEDBACK_MAX_BACKOFF_SECONDS", 600),
                batch_size=_env_int("AI_FEEDBACK_BATCH_SIZE", 5),
            ),
            worker=WorkerSettings(
                enabled=_env_bool("AI_FEEDBACK_WORKER_ENABLED", default=False),
                interval_ms=_env_int("AI_FEEDBACK_WORKER_INTERVAL_MS", 3_000),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range or inconsistent values."""

        _check_range("AI_FEEDBACK_MAX_CONCURRENCY", self.guards.max_concurrency, 1, 20)
        _check_range(
            "AI_FEEDBACK_MAX_PER_GROUP_PER_MINUTE",
            self.guards.max_per_group_per_minute,
            1,
            600,
        )
        if self.provider.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"AI_FEEDBACK_PROVIDER must be one of {', '.join(SUPPORTED_PROVIDERS)}; "
                f"got {self.provider.provider!r}.",
            )
        _check_range("AI_FEEDBACK_MAX_CODE_CHARS", self.provider.max_code_chars, 500, 200_000)
        _check_range("AI_FEEDBACK_MAX_ITEMS", self.provider.max_items, 1, 100)
        if self.provider.timeout_ms < 1_000:
            raise ValueError("OPENROUTER_TIMEOUT_MS must be >= 1000.")
        if self.provider.max_retries < 0:
            raise ValueError("OPENROUTER_MAX_RETRIES must be >= 0.")
        if (
            self.provider.provider == PROVIDER_OPENROUTER
            and self.provider.real_enabled
            and not self.provider.api_key
        ):
            raise ValueError(
                "OPENROUTER_API_KEY is required when AI_FEEDBACK_PROVIDER=openrouter "
                "and AI_FEEDBACK_REAL_ENABLED is true.",
            )
        if self.jobs.max_attempts < 1:
            raise ValueError("AI_FEEDBACK_MAX_ATTEMPTS must be >= 1.")
        if self.jobs.lock_ttl_seconds <= 0:
            raise ValueError("AI_FEEDBACK_LOCK_TTL_SECONDS must be > 0.")
        if self.jobs.base_backoff_seconds <= 0:
            raise ValueError("AI_FEEDBACK_BASE_BACKOFF_SECONDS must be > 0.")
        if self.jobs.max_backoff_seconds < self.jobs.base_backoff_seconds:
            raise ValueError(
                "AI_FEEDBACK_MAX_BACKOFF_SECONDS must be >= AI_FEEDBACK_BASE_BACKOFF_SECONDS.",
            )
        if self.jobs.batch_size < 1:
            raise ValueError("AI_FEEDBACK_BATCH_SIZE must be >= 1.")
        if self.worker.interval_ms <= 0:
            raise ValueError("AI_FEEDBACK_WORKER_INTERVAL_MS must be > 0.")
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("AI_FEEDBACK_SQLITE_BUSY_TIMEOUT_MS must be > 0.")


def _check_range(name: str, value: int, lower: int, upper: int) -> None:
    if not lower <= value <= upper:
        raise ValueError(f"{name} must be between {lower} and {upper}; got {value}.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
