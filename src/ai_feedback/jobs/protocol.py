"""Strict JSON response protocol for provider output.

Validation is fail-closed: any key outside the allowed root or item key sets
rejects the whole response, so injected fields never reach storage.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable, Sequence
from typing import Any

from ai_feedback.jobs.errors import FeedbackProviderError, ProviderErrorCode
from ai_feedback.jobs.models import FeedbackItem, FeedbackSeverity, FeedbackType

ALLOWED_ROOT_KEYS: tuple[str, ...] = ("items", "meta")
ALLOWED_ITEM_KEYS: tuple[str, ...] = (
    "type",
    "severity",
    "message",
    "suggestion",
    "tags",
    "scoreHint",
)
ALLOWED_TYPES: tuple[str, ...] = tuple(member.value for member in FeedbackType)
ALLOWED_SEVERITIES: tuple[str, ...] = tuple(member.value for member in FeedbackSeverity)
DEFAULT_TYPE = FeedbackType.OTHER
DEFAULT_SEVERITY = FeedbackSeverity.WARN
CATCH_ALL_TAG = "other"

FEEDBACK_TAGS: tuple[str, ...] = (
    "readability",
    "naming",
    "style",
    "formatting",
    "complexity",
    "duplication",
    "edge-cases",
    "null-safety",
    "exception-safety",
    "performance",
    "memory",
    "security",
    "correctness",
    "bug-risk",
    "maintainability",
    "testability",
    "api-design",
    "abstraction",
    "encapsulation",
    "coupling",
    "cohesion",
    "concurrency",
    "io",
    "algorithm",
    "data-structure",
    "documentation",
    "logging",
    "error-handling",
    "validation",
    "input-sanitization",
    "resource-management",
    "time-complexity",
    "space-complexity",
    "readability-comments",
    "modularity",
    "dead-code",
    "unused",
    CATCH_ALL_TAG,
)
_FEEDBACK_TAG_SET = frozenset(FEEDBACK_TAGS)

SCHEMA_EXAMPLE: dict[str, object] = {
    "items": [
        {
            "type": FeedbackType.STYLE.value,
            "severity": FeedbackSeverity.WARN.value,
            "message": "Use clearer variable names.",
            "tags": ["readability"],
        },
    ],
    "meta": {"language": "python"},
}

_FENCED_JSON = re.compile(r"```json(.*?)```", re.DOTALL | re.IGNORECASE)
_TAG_SEPARATORS = re.compile(r"[\s_]+")
_REPEATED_HYPHENS = re.compile(r"-+")
_UNPARSED: Any = object()


def parse_response_content(content: str) -> list[FeedbackItem]:
    """Parse provider message content into validated, normalized items."""

    raw = content.strip()
    parsed = _try_load(raw)
    if parsed is _UNPARSED:
        fenced = extract_fenced_json(raw)
        if fenced is not None:
            parsed = _try_load(fenced)
    if parsed is _UNPARSED:
        raise _bad_response("content is neither JSON nor a ```json fenced block")
    return validate_payload(parsed)


def extract_fenced_json(text: str) -> str | None:
    """Return the interior of the first ```json fenced block, if any."""

    match = _FENCED_JSON.search(text)
    if match is None:
        return None
    inner = match.group(1).strip()
    return inner or None


def validate_payload(parsed: object) -> list[FeedbackItem]:
    """Validate a decoded response document against the protocol."""

    if not isinstance(parsed, dict):
        raise _bad_response("root must be a JSON object")
    if not parsed:
        raise _bad_response("root object is empty")
    unknown_root = sorted(key for key in parsed if key not in ALLOWED_ROOT_KEYS)
    if unknown_root:
        raise _bad_response(f"unknown root keys: {', '.join(unknown_root)}")

    items = parsed.get("items")
    if not isinstance(items, list):
        raise _bad_response("items must be an array")
    if "meta" in parsed and not isinstance(parsed["meta"], dict):
        raise _bad_response("meta must be an object")

    return [validate_item(item, index=index) for index, item in enumerate(items)]


def validate_item(item: object, *, index: int = 0) -> FeedbackItem:
    """Validate and coerce one response item."""

    if not isinstance(item, dict):
        raise _bad_response(f"items[{index}] must be an object")
    unknown = sorted(key for key in item if key not in ALLOWED_ITEM_KEYS)
    if unknown:
        raise _bad_response(f"items[{index}] has unknown keys: {', '.join(unknown)}")

    message = item.get("message")
    if not isinstance(message, str) or not message.strip():
        raise _bad_response(f"items[{index}].message must be a non-empty string")

    raw_type = item.get("type")
    raw_severity = item.get("severity")
    suggestion = item.get("suggestion")
    raw_tags = item.get("tags")
    tags = (
        [tag for tag in raw_tags if isinstance(tag, str)] if isinstance(raw_tags, list) else None
    )

    return FeedbackItem(
        type=FeedbackType(raw_type) if raw_type in ALLOWED_TYPES else DEFAULT_TYPE,
        severity=(
            FeedbackSeverity(raw_severity)
            if raw_severity in ALLOWED_SEVERITIES
            else DEFAULT_SEVERITY
        ),
        message=message,
        suggestion=suggestion if isinstance(suggestion, str) else None,
        tags=normalize_tags(tags),
        score_hint=coerce_score_hint(item.get("scoreHint")),
    )


def clean_tag(tag: str) -> str:
    trimmed = tag.strip().lower()
    if not trimmed:
        return ""
    hyphenated = _TAG_SEPARATORS.sub("-", trimmed)
    return _REPEATED_HYPHENS.sub("-", hyphenated)


def normalize_tags(tags: Iterable[str] | None) -> list[str] | None:
    """Normalize tags to the fixed vocabulary; unknown tags collapse to `other`."""

    if tags is None:
        return None
    normalized: list[str] = []
    for tag in tags:
        cleaned = clean_tag(tag)
        if not cleaned:
            continue
        mapped = cleaned if cleaned in _FEEDBACK_TAG_SET else CATCH_ALL_TAG
        if mapped not in normalized:
            normalized.append(mapped)
    return normalized or None


def normalize_items(items: Sequence[FeedbackItem]) -> list[FeedbackItem]:
    """Return copies of `items` with normalized tags."""

    return [
        FeedbackItem(
            type=item.type,
            severity=item.severity,
            message=item.message,
            suggestion=item.suggestion,
            tags=normalize_tags(item.tags),
            score_hint=item.score_hint,
        )
        for item in items
    ]


def coerce_score_hint(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if not isinstance(value, int | float | str):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        parsed = float(value)
    except (ValueError, OverflowError):
        return None
    return parsed if math.isfinite(parsed) else None


def _try_load(raw: str) -> Any:
    try:
        return json.loads(raw, parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return _UNPARSED


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant: {name}")


def _bad_response(detail: str) -> FeedbackProviderError:
    return FeedbackProviderError(ProviderErrorCode.BAD_RESPONSE, detail)
