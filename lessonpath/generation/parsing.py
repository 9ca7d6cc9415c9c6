"""
Parsing of tutor responses into candidate checkpoint payloads.

Models often wrap JSON in prose or code fences, so we scan for the first
balanced {...} object instead of parsing the whole message.
"""

from __future__ import annotations

import json
from typing import Any

from lessonpath.core.exceptions import InvalidPayload
from lessonpath.generation.payload import CheckpointPayload


def extract_json_object(raw: str | None) -> str | None:
    """
    Return the first balanced top-level {...} substring.

    Braces inside JSON string literals (including escaped quotes) are ignored.
    Returns None when no balanced object exists.
    """
    text = raw or ""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : idx + 1]
        # Unbalanced from this brace; try the next opening brace
        start = text.find("{", start + 1)
    return None


def _clean_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def coerce_payload(data: dict[str, Any]) -> CheckpointPayload:
    """
    Coerce loosely-typed JSON into a candidate payload.

    Non-string options are dropped, blank options removed and a missing or
    non-integer correctIndex becomes -1 so validation rejects it.
    """
    raw_options = data.get("options")
    options = (
        [opt.strip() for opt in raw_options if isinstance(opt, str) and opt.strip()]
        if isinstance(raw_options, list)
        else []
    )
    raw_index = data.get("correctIndex", data.get("correct_index"))
    correct_index = raw_index if isinstance(raw_index, int) and not isinstance(raw_index, bool) else -1
    visual = _clean_str(data.get("visual")) or None

    return CheckpointPayload(
        visual=visual,
        question=_clean_str(data.get("question")),
        options=options,
        correct_index=correct_index,
        explanation=_clean_str(data.get("explanation")),
    )


def parse_checkpoint_response(message: str) -> CheckpointPayload:
    """
    Parse a tutor message into a candidate payload (not yet validated).

    Raises:
        InvalidPayload: No JSON object, malformed JSON or a non-object value.
    """
    candidate = extract_json_object(message) or (message or "").strip()
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise InvalidPayload(f"Response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidPayload("Response JSON is not an object")
    return coerce_payload(data)
