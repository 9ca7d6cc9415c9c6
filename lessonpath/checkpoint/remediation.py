"""
Quick Review remediation.

Watches the wrong-attempt counter of each section's checkpoint. After
`threshold` misses without a pass, a simplified two-option question is shown
once for that section. Answering it correctly hides it again so the learner
can retry the checkpoint; it never counts as passing the section.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from lessonpath.delivery.telemetry import TelemetrySink, safe_track
from lessonpath.generation.shapes import ShapeDescriptor, format_length

QUICK_REVIEW_TRIGGER = "checkpoint_wrong_twice"


@dataclass(frozen=True)
class QuickReview:
    title: str
    prompt: str
    options: tuple[str, str]
    correct_index: int
    explanation: str


@dataclass(frozen=True)
class RemediationState:
    visible: bool = False
    selected_index: int | None = None
    is_correct: bool | None = None


def build_quick_review(shape: ShapeDescriptor | None) -> QuickReview:
    """
    Two-option definitional review built from the section's shape.

    Contrasts adding the sides (perimeter) with the most common confusion for
    that shape; without a shape it asks what perimeter measures.
    """
    if shape is None:
        return QuickReview(
            title="Quick Review",
            prompt="What does perimeter measure?",
            options=("The distance around the outside of a shape", "The space inside a shape"),
            correct_index=0,
            explanation="Perimeter means you go all the way around the outside edges.",
        )

    sides = shape.sides
    walk = " + ".join(str(s) for s in sides)
    total = format_length(shape.perimeter, shape.unit)

    if shape.shape == "square":
        prompt = f"A square has 4 equal sides of {format_length(shape.a, shape.unit)}. Which finds its perimeter?"
        wrong = f"{shape.a} × {shape.a}"
    elif shape.shape == "rectangle":
        b = shape.b or shape.a
        prompt = (
            f"A rectangle is {format_length(shape.a, shape.unit)} by {format_length(b, shape.unit)}. "
            "Which finds its perimeter?"
        )
        wrong = f"{shape.a} + {b}"
    else:
        prompt = "A triangle has 3 sides. Which finds its perimeter?"
        wrong = f"{sides[0]} + {sides[1]}"

    return QuickReview(
        title="Quick Review",
        prompt=prompt,
        options=(walk, wrong),
        correct_index=0,
        explanation=f"Perimeter adds every side: {walk} = {total}.",
    )


class RemediationTrigger:
    """Per-section quick review state for one lesson session."""

    def __init__(
        self,
        threshold: int = 2,
        telemetry: TelemetrySink | None = None,
        lesson_id: int | None = None,
    ):
        self.threshold = threshold
        self.telemetry = telemetry
        self.lesson_id = lesson_id
        self._states: dict[int, RemediationState] = {}
        self._shown: set[int] = set()

    def state(self, section_index: int) -> RemediationState:
        return self._states.get(section_index, RemediationState())

    def is_visible(self, section_index: int) -> bool:
        return self.state(section_index).visible

    def was_shown(self, section_index: int) -> bool:
        return section_index in self._shown

    def observe(self, section_index: int, wrong_attempts: int, passed: bool) -> bool:
        """
        React to the latest checkpoint outcome.

        Returns:
            True if the quick review became visible on this call.
        """
        if passed or wrong_attempts < self.threshold or section_index in self._shown:
            return False

        self._shown.add(section_index)
        self._states[section_index] = RemediationState(visible=True)
        logger.info(f"Quick review shown for section {section_index} after {wrong_attempts} misses")
        safe_track(
            self.telemetry,
            "quick_review_shown",
            {
                "lesson_id": self.lesson_id,
                "phase": "learn",
                "section_index": section_index,
                "trigger": QUICK_REVIEW_TRIGGER,
            },
        )
        return True

    def answer(self, section_index: int, selected_index: int, review: QuickReview) -> RemediationState | None:
        """
        Record an answer to a visible quick review.

        Returns:
            Updated state, or None if the review is not visible or the index is invalid.
        """
        current = self.state(section_index)
        if not current.visible or not 0 <= selected_index < len(review.options):
            return None

        is_correct = selected_index == review.correct_index
        updated = RemediationState(
            visible=not is_correct,
            selected_index=selected_index,
            is_correct=is_correct,
        )
        self._states[section_index] = updated
        safe_track(
            self.telemetry,
            "quick_review_answered",
            {
                "lesson_id": self.lesson_id,
                "phase": "learn",
                "section_index": section_index,
                "is_correct": is_correct,
            },
        )
        return updated

    def clear(self, section_index: int) -> None:
        """Hide the review (the checkpoint was passed)."""
        if section_index in self._states:
            self._states[section_index] = RemediationState()

    def reset(self) -> None:
        self._states.clear()
        self._shown.clear()
