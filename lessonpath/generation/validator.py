"""
Checkpoint payload validation.

One quality bar for every checkpoint, whether it came from the tutor service,
the deterministic fallback or the cache:

1. Question and explanation are non-empty after trimming
2. 3 or 4 options, correct_index in range
3. No generic coaching ("study strategy", "ask a teacher", ...) anywhere
4. Compute questions mention at least one number
"""

from __future__ import annotations

import re

from lessonpath.generation.payload import CheckpointIntent, CheckpointPayload

MIN_OPTIONS = 3
MAX_OPTIONS = 4

BANNED_COACHING_RE = re.compile(
    r"""
    study \s+ strateg(?:y|ies)
    | ask \s+ for \s+ help
    | ask \s+ a \s+ teacher
    | teacher
    | main \s+ concept
    | real-life \s+ situation
    | memorize
    | practice \s+ more
    | use \s+ a \s+ calculator
    | copy \s+ someone
    """,
    re.VERBOSE | re.IGNORECASE,
)

_DIGIT_RE = re.compile(r"\d")


def contains_banned_coaching(text: str | None) -> bool:
    return bool(BANNED_COACHING_RE.search(text or ""))


def payload_has_numbers(payload: CheckpointPayload) -> bool:
    return bool(_DIGIT_RE.search(f"{payload.question} {' '.join(payload.options)}"))


def validation_issues(payload: CheckpointPayload, intent: CheckpointIntent) -> list[str]:
    """
    Check a candidate payload.

    Returns:
        List of human-readable issues; empty when the payload is acceptable.
    """
    issues: list[str] = []

    if not payload.question.strip():
        issues.append("empty question")
    if not MIN_OPTIONS <= len(payload.options) <= MAX_OPTIONS:
        issues.append(f"expected {MIN_OPTIONS}-{MAX_OPTIONS} options, got {len(payload.options)}")
    if not 0 <= payload.correct_index < len(payload.options):
        issues.append(f"correct_index {payload.correct_index} out of range")
    if not payload.explanation.strip():
        issues.append("empty explanation")

    if contains_banned_coaching(payload.question):
        issues.append("generic coaching in question")
    if contains_banned_coaching(payload.explanation):
        issues.append("generic coaching in explanation")
    if any(contains_banned_coaching(opt) for opt in payload.options):
        issues.append("generic coaching in options")

    if intent == CheckpointIntent.COMPUTE and not payload_has_numbers(payload):
        issues.append("compute question without numbers")

    return issues


def is_valid_checkpoint_payload(payload: CheckpointPayload, intent: CheckpointIntent) -> bool:
    return not validation_issues(payload, intent)
