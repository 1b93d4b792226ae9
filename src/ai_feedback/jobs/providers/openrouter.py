"""OpenRouter chat-completions provider with timeout, retry and strict parsing."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from ai_feedback.jobs.errors import FeedbackProviderError, ProviderErrorCode
from ai_feedback.jobs.models import FeedbackItem, SubjectContent
from ai_feedback.jobs.prompts import build_system_prompt, build_user_prompt
from ai_feedback.jobs.protocol import parse_response_content

logger = logging.getLogger(__name__)

PROVIDER_NAME = "openrouter"
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_MAX_CODE_CHARS = 12_000
DEFAULT_MAX_ITEMS = 20
DEFAULT_HTTP_REFERER = "https://ai-feedback.local"
DEFAULT_X_TITLE = "ai-feedback"
RETRY_BASE_SECONDS = 0.2
RETRY_FACTOR = 2.5
TEMPERATURE = 0.2


@dataclass(slots=True)
class ChatRequest:
    """Prepared outbound request."""

    endpoint: str
    payload: dict[str, Any]
    headers: dict[str, str]
    was_truncated: bool


def retry_backoff_seconds(attempt: int) -> float:
    """Delay before retry number `attempt` (1-based)."""

    return RETRY_BASE_SECONDS * RETRY_FACTOR ** max(0, attempt - 1)


def map_http_status(status_code: int) -> FeedbackProviderError:
    """Classify a non-success HTTP status."""

    if status_code in {401, 403}:
        return FeedbackProviderError(ProviderErrorCode.UNAUTHORIZED, f"HTTP {status_code}")
    if status_code == 429:
        return FeedbackProviderError(ProviderErrorCode.RATE_LIMIT_UPSTREAM, "HTTP 429")
    if status_code >= 500:
        return FeedbackProviderError(ProviderErrorCode.UPSTREAM_5XX, f"HTTP {status_code}")
    if 400 <= status_code <= 499:
        return FeedbackProviderError(ProviderErrorCode.UPSTREAM_4XX, f"HTTP {status_code}")
    return FeedbackProviderError(
        ProviderErrorCode.BAD_RESPONSE,
        f"unexpected HTTP status {status_code}",
    )


class OpenRouterFeedbackProvider:
    """Calls an OpenAI-compatible chat endpoint and validates its JSON answer."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        api_key: str | None,
        real_enabled: bool,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_code_chars: int = DEFAULT_MAX_CODE_CHARS,
        max_items: int = DEFAULT_MAX_ITEMS,
        http_referer: str = DEFAULT_HTTP_REFERER,
        x_title: str = DEFAULT_X_TITLE,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.real_enabled = real_enabled
        self.base_url = base_url
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.max_code_chars = max_code_chars
        self.max_items = max_items
        self.http_referer = http_referer
        self.x_title = x_title
        self._owns_client = client is None
        self._client = client or httpx.Client()
        self._sleep = sleep

    def analyze(self, subject: SubjectContent) -> list[FeedbackItem]:
        """Return validated feedback items, retrying transient failures."""

        if not self.real_enabled:
            raise FeedbackProviderError(ProviderErrorCode.REAL_DISABLED)
        if not self.api_key:
            raise FeedbackProviderError(ProviderErrorCode.MISSING_API_KEY)

        request = self.build_request(subject)
        if request.was_truncated:
            logger.debug(
                "Code truncated to %d chars for subject %s",
                self.max_code_chars,
                subject.subject_id,
            )
        started = time.monotonic()
        attempt = 0
        while True:
            if attempt > 0:
                self._sleep(retry_backoff_seconds(attempt))
            try:
                items = self._call(request)[: self.max_items]
            except FeedbackProviderError as error:
                if error.retryable and attempt < self.max_retries:
                    attempt += 1
                    continue
                logger.warning(
                    "Feedback provider failed: subject=%s group=%s provider=%s model=%s "
                    "duration_ms=%d retried=%s error=%s",
                    subject.subject_id,
                    subject.group_key or "n/a",
                    PROVIDER_NAME,
                    self.model,
                    int((time.monotonic() - started) * 1000),
                    attempt > 0,
                    error.code.value,
                )
                raise
            logger.debug(
                "Feedback provider success: subject=%s group=%s provider=%s model=%s "
                "duration_ms=%d retried=%s items=%d",
                subject.subject_id,
                subject.group_key or "n/a",
                PROVIDER_NAME,
                self.model,
                int((time.monotonic() - started) * 1000),
                attempt > 0,
                len(items),
            )
            return items

    def build_request(self, subject: SubjectContent) -> ChatRequest:
        user_prompt = build_user_prompt(subject, max_code_chars=self.max_code_chars)
        return ChatRequest(
            endpoint=f"{self.base_url.rstrip('/')}/chat/completions",
            payload={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": build_system_prompt()},
                    {"role": "user", "content": user_prompt.text},
                ],
                "temperature": TEMPERATURE,
                "response_format": {"type": "json_object"},
            },
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "HTTP-Referer": self.http_referer,
                "X-Title": self.x_title,
            },
            was_truncated=user_prompt.was_truncated,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> OpenRouterFeedbackProvider:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _call(self, request: ChatRequest) -> list[FeedbackItem]:
        try:
            response = self._client.post(
                request.endpoint,
                json=request.payload,
                headers=request.headers,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as error:
            raise FeedbackProviderError(ProviderErrorCode.TIMEOUT, str(error) or "timeout") from error
        except httpx.HTTPError as error:
            raise FeedbackProviderError(ProviderErrorCode.NETWORK_ERROR, str(error)) from error

        if not response.is_success:
            raise map_http_status(response.status_code)
        try:
            data = response.json()
        except (ValueError, RecursionError) as error:
            raise FeedbackProviderError(
                ProviderErrorCode.BAD_RESPONSE,
                "response body is not JSON",
            ) from error
        return parse_response_content(_extract_content(data))


def _extract_content(data: object) -> str:
    content = None
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict):
                content = message.get("content")
    if not isinstance(content, str):
        raise FeedbackProviderError(
            ProviderErrorCode.BAD_RESPONSE,
            "choices[0].message.content is missing",
        )
    return content
