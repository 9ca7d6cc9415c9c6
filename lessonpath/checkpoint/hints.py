"""
Checkpoint hints.

The deterministic hint needs no network and depends only on the intent and
the shape found in the section. Tutor requests hand the question to the
external assistant as plain text and ask it not to reveal the answer.
"""

from __future__ import annotations

from collections.abc import Sequence

from lessonpath.generation.payload import CheckpointIntent
from lessonpath.generation.shapes import ShapeDescriptor, extract_shape

OPTION_LETTERS = "ABCD"


def deterministic_hint(intent: CheckpointIntent, shape: ShapeDescriptor | None) -> str:
    if intent == CheckpointIntent.DEFINE:
        return "Perimeter means the distance around the outside of a shape."
    if shape is not None:
        if shape.shape == "square":
            return "A square has 4 equal sides. Add the same number 4 times."
        if shape.shape == "rectangle":
            return "A rectangle has 2 long sides and 2 short sides. Add all 4 sides."
        return "A triangle has 3 sides. Add the 3 side lengths."
    if intent == CheckpointIntent.SCENARIO:
        return (
            "Perimeter is how much it takes to go all the way around (like fence or string). "
            "Add the side lengths."
        )
    return "Perimeter means add all the side lengths."


def hint_for_section(intent: CheckpointIntent, section_text: str | None) -> str:
    return deterministic_hint(intent, extract_shape(section_text))


def tutor_hint_request(section_title: str, question: str, options: Sequence[str]) -> str:
    """Hand-off text for the tutor; lists options but withholds the answer."""
    lettered = " ".join(
        f"{OPTION_LETTERS[idx]}. {opt}" for idx, opt in enumerate(options[: len(OPTION_LETTERS)])
    )
    return "\n".join(
        [
            f'I\'m stuck on a checkpoint question for "{section_title}".',
            f"Question: {question}",
            f"Options: {lettered}",
            "Please give me a hint and help me reason, but do NOT tell me the answer letter.",
        ]
    )


def explain_section_request(section_title: str) -> str:
    return f'I\'m reading about "{section_title}". Can you explain it in simple terms?'
