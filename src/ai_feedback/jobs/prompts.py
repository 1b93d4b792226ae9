"""Prompt templates for provider requests."""

from __future__ import annotations

import json
from dataclasses import dataclass

from ai_feedback.jobs.models import SubjectContent
from ai_feedback.jobs.protocol import (
    ALLOWED_ITEM_KEYS,
    ALLOWED_ROOT_KEYS,
    ALLOWED_SEVERITIES,
    ALLOWED_TYPES,
    FEEDBACK_TAGS,
    SCHEMA_EXAMPLE,
)

SYSTEM_PROMPT_TEMPLATE = """\
You are a code review feedback provider.
Return ONLY a single JSON object; first character "{{", last character "}}".
Root keys allowed: {root_keys}. No other root keys.
meta is optional; if present it must be an object (e.g., language, wasTruncated, model).
items must be an array of objects.
Item keys allowed: {item_keys}. No other item keys.
type must be one of: {types}.
severity must be one of: {severities}.
message must be a non-empty string.
tags must come from this list only: {tags}.
No markdown, no code fences, no explanations, no extra fields.
If no issues, return {{"items":[]}}.
Schema example: {schema_example}"""


@dataclass(slots=True)
class UserPrompt:
    """User prompt plus truncation bookkeeping."""

    text: str
    was_truncated: bool
    original_length: int
    used_length: int


def build_system_prompt() -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        root_keys=", ".join(ALLOWED_ROOT_KEYS),
        item_keys=", ".join(ALLOWED_ITEM_KEYS),
        types="|".join(ALLOWED_TYPES),
        severities="|".join(ALLOWED_SEVERITIES),
        tags=", ".join(FEEDBACK_TAGS),
        schema_example=json.dumps(SCHEMA_EXAMPLE, separators=(",", ":")),
    )


def build_user_prompt(subject: SubjectContent, *, max_code_chars: int) -> UserPrompt:
    """Render the subject, truncating code to `max_code_chars`."""

    code_text = subject.code_text or ""
    original_length = len(code_text)
    was_truncated = original_length > max_code_chars
    used_text = code_text[:max_code_chars] if was_truncated else code_text
    lines = [
        "Task: analyze the student submission and return JSON feedback items only.",
        f"SubmissionId: {subject.subject_id}",
        f"GroupKey: {subject.group_key or 'n/a'}",
        f"Language: {subject.language or 'unknown'}",
        f"AttemptNo: {subject.attempt_no}",
        (
            f"CodeTruncated: {'true' if was_truncated else 'false'}, "
            f"OriginalLength: {original_length}, UsedLength: {len(used_text)}"
        ),
        "Code:",
        used_text,
    ]
    return UserPrompt(
        text="\n".join(lines),
        was_truncated=was_truncated,
        original_length=original_length,
        used_length=len(used_text),
    )
