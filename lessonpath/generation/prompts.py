"""
Prompts for checkpoint generation.

The tutor service receives a system prompt (rules, intent instructions and
the strict JSON contract) and a user prompt (the section excerpt, which is
the source of truth for the question).
"""
from __future__ import annotations

from lessonpath.generation.payload import CheckpointIntent

# =============================================================================
# System Prompt
# =============================================================================

CHECKPOINT_SYSTEM_PROMPT = """You create one check-for-understanding question for a K-12 learner.
Target: {grade_band} {subject}.

CRITICAL: The question must be directly answerable from the provided section content. Do NOT ask meta questions like "What is the main concept?"
Make it concrete: include at least one specific number, definition, example, or scenario tied to the section.
Wrong options must be plausible misunderstandings of THIS content (not generic study advice).
Never output study strategies, teacher advice, or generic coaching content.
{intent_rules}

If it helps engagement, include a simple text diagram in a "visual" field (ASCII box, labeled sides, small table). Keep it short.

Return ONLY valid JSON (no markdown, no extra text):
{{"visual":"(optional)","question":"...","options":["...","...","..."],"correctIndex":0,"explanation":"..."}}
Rules: options length is 3 or 4; correctIndex is 0-based; explanation is 1-2 short sentences; avoid trick questions."""

INTENT_RULES: dict[CheckpointIntent, tuple[str, ...]] = {
    CheckpointIntent.DEFINE: (
        "Intent: define.",
        "Ask a short definition question about perimeter.",
        "Avoid numbers unless they are in the section.",
    ),
    CheckpointIntent.COMPUTE: (
        "Intent: compute.",
        "The question MUST include numbers and ask for a perimeter calculation.",
        "All options must be numeric answers with units when present.",
    ),
    CheckpointIntent.SCENARIO: (
        "Intent: scenario.",
        "Ask a simple real-world perimeter scenario tied to the section (fence, ribbon, string).",
        "Include numbers when present in the section.",
    ),
}

# =============================================================================
# User Prompt
# =============================================================================

CHECKPOINT_USER_PROMPT = """Lesson title: {lesson_title}
Section title: {section_title}
Section content (source of truth):
{content}

Create the JSON checkpoint now."""


def clamp_text(value: str | None, max_chars: int) -> str:
    """Trim and cut to max_chars, marking truncation with an ellipsis."""
    trimmed = (value or "").strip()
    if len(trimmed) <= max_chars:
        return trimmed
    return f"{trimmed[:max_chars].strip()}…"


def build_system_prompt(
    intent: CheckpointIntent,
    grade_band: str | None = None,
    subject: str | None = None,
) -> str:
    return CHECKPOINT_SYSTEM_PROMPT.format(
        grade_band=clamp_text(grade_band or "Grade 2", 40),
        subject=clamp_text(subject or "math", 40),
        intent_rules="\n".join(INTENT_RULES[intent]),
    )


def build_user_prompt(
    section_content: str | None,
    section_title: str | None = None,
    lesson_title: str | None = None,
    content_chars: int = 750,
) -> str:
    return CHECKPOINT_USER_PROMPT.format(
        lesson_title=clamp_text(lesson_title or "Lesson", 80),
        section_title=clamp_text(section_title or "Lesson section", 80),
        content=clamp_text(section_content, content_chars),
    )
