"""
Deterministic perimeter checkpoint generator.

Used whenever the tutor service is unavailable or returns something unusable.
A pure function of (section_text, intent, seed): the same inputs always give
the same payload, which keeps cached and regenerated checkpoints identical.

Compute and scenario questions are only produced when the section text
contains numbers we can ground them on (a recognised shape or an explicit
"Perimeter = ... = total" line). Otherwise the request is downgraded to a
canned definition question.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from loguru import logger

from lessonpath.generation.payload import CheckpointIntent, CheckpointPayload
from lessonpath.generation.seeded import Mulberry32, pick
from lessonpath.generation.shapes import (
    EquationTotal,
    ShapeDescriptor,
    extract_equation_total,
    extract_shape,
    format_length,
)

DEFINITION_ANSWER = "The distance around the outside of a shape"

DEFINE_VARIANTS: tuple[dict, ...] = (
    {
        "question": "What does perimeter measure?",
        "options": [
            DEFINITION_ANSWER,
            "The space inside a shape",
            "The number of corners on a shape",
            "How heavy something is",
        ],
        "explanation": "Perimeter means you go all the way around the outside edges.",
    },
    {
        "question": "Perimeter is…",
        "options": [
            DEFINITION_ANSWER,
            "The space inside a shape",
            "How long one side is",
            "How many corners a shape has",
        ],
        "explanation": "Perimeter is the distance around the outside.",
    },
    {
        "question": "Which of these is the perimeter of a shape?",
        "options": [
            DEFINITION_ANSWER,
            "The length of one side",
            "The space the shape covers",
            "The number of sides",
        ],
        "explanation": "To find perimeter, add the lengths of all the sides around the outside.",
    },
)

_DIGIT_RE = re.compile(r"\d")


@dataclass(frozen=True)
class FallbackCheckpoint:
    """Generated payload plus the intent it actually answers."""

    payload: CheckpointPayload
    intent: CheckpointIntent
    downgraded: bool = False


def _select_distractors(total: int, candidates: Iterable[int], count: int = 3) -> list[int]:
    """Distinct positive wrong totals, padded with larger off-by errors."""
    chosen: list[int] = []
    for value in candidates:
        if value > 0 and value != total and value not in chosen:
            chosen.append(value)
        if len(chosen) == count:
            return chosen
    pad = total + 4
    while len(chosen) < count:
        if pad not in chosen:
            chosen.append(pad)
        pad += 2
    return chosen


def _question_templates(shape: ShapeDescriptor) -> tuple[list[str], list[str]]:
    """(compute templates, scenario templates) for a shape."""
    u = shape.unit
    a = format_length(shape.a, u)

    if shape.shape == "square":
        return (
            [
                f"A square has side length {a}. What is the perimeter?",
                f"A square has sides of {a}. What is the perimeter?",
                f"Add the sides: the square's side is {a}. What is the perimeter?",
            ],
            [
                f"A ribbon goes around a square. Each side is {a}. How long is the ribbon?",
                f"A fence goes around a square. Each side is {a}. How much fence is needed?",
                f"String goes around a square. Each side is {a}. How long is the string?",
            ],
        )

    if shape.shape == "rectangle":
        b = format_length(shape.b or shape.a, u)
        return (
            [
                f"A rectangle is {a} by {b}. What is the perimeter?",
                f"A rectangle has sides {a} and {b}. What is the perimeter?",
                f"Add all sides of the rectangle ({shape.a} and {shape.b}). What is the perimeter?",
            ],
            [
                f"A fence goes around a garden that is {a} by {b}. How much fence is needed?",
                f"A ribbon goes around a rectangle that is {a} by {b}. How long is the ribbon?",
                f"String goes around a rectangle that is {a} by {b}. How long is the string?",
            ],
        )

    b = format_length(shape.b or shape.a, u)
    c = format_length(shape.c or shape.a, u)
    return (
        [
            f"A triangle has sides {a}, {b}, and {c}. What is the perimeter?",
            f"Add the 3 sides ({shape.a}, {shape.b}, and {shape.c}). What is the perimeter?",
            f"Triangle sides are {a}, {b}, {c}. What is the perimeter?",
        ],
        [
            f"String goes around a triangle with sides {a}, {b}, and {c}. How long is the string?",
            f"A ribbon goes around a triangle with sides {a}, {b}, and {c}. How long is the ribbon?",
            f"A fence goes around a triangle with sides {a}, {b}, and {c}. How much fence is needed?",
        ],
    )


def _distractor_candidates(shape: ShapeDescriptor) -> list[int]:
    total = shape.perimeter
    if shape.shape == "square":
        # one side only, three sides, off by two
        return [shape.a, total - shape.a, total + 2, total - 2]
    if shape.shape == "rectangle":
        a, b = shape.a, shape.b or shape.a
        # half the walk, one side missing, off by two
        return [a + b, 2 * a + b, 2 * b + a, total + 2]
    a, b, c = shape.sides
    return [a + b, b + c, total + 2, total - 2]


def build_from_shape(
    shape: ShapeDescriptor,
    intent: CheckpointIntent,
    rand: Callable[[], float],
) -> CheckpointPayload:
    """Compute/scenario question for an extracted shape (correct_index 0)."""
    total = shape.perimeter
    compute_templates, story_templates = _question_templates(shape)
    templates = story_templates if intent == CheckpointIntent.SCENARIO else compute_templates

    wrong = _select_distractors(total, _distractor_candidates(shape))
    options = [format_length(total, shape.unit)] + [format_length(v, shape.unit) for v in wrong]
    sum_text = " + ".join(str(side) for side in shape.sides)

    return CheckpointPayload(
        question=pick(templates, rand),
        options=options,
        correct_index=0,
        explanation=f"{sum_text} = {format_length(total, shape.unit)}.",
    )


def build_from_equation(equation: EquationTotal, intent: CheckpointIntent) -> CheckpointPayload:
    """Ask about the total of an explicit perimeter equation in the text."""
    total = equation.total
    wrong = _select_distractors(total, [total + 2, total - 2, total + 4])
    if intent == CheckpointIntent.SCENARIO:
        question = "A string goes around the shape. How long is the string?"
    else:
        question = "In this example, what is the perimeter?"
    return CheckpointPayload(
        visual=f"Perimeter = {equation.sum_text} = {format_length(total, equation.unit)}",
        question=question,
        options=[format_length(total, equation.unit)] + [format_length(v, equation.unit) for v in wrong],
        correct_index=0,
        explanation=f"Perimeter is the total distance around. Here it is {format_length(total, equation.unit)}.",
    )


def build_definition(rand: Callable[[], float]) -> CheckpointPayload:
    variant = pick(DEFINE_VARIANTS, rand)
    return CheckpointPayload(
        question=variant["question"],
        options=list(variant["options"]),
        correct_index=0,
        explanation=variant["explanation"],
    )


def generate_fallback_checkpoint(
    section_text: str | None,
    intent: CheckpointIntent,
    seed: int,
) -> FallbackCheckpoint | None:
    """
    Build a checkpoint without the tutor service.

    Args:
        section_text: Section content (source of truth)
        intent: Requested intent; may be downgraded to DEFINE
        seed: Drives template and variant selection

    Returns:
        FallbackCheckpoint, or None when the section has no text at all.
    """
    text = section_text or ""
    if not text.strip():
        return None

    rand = Mulberry32(seed)

    def definition() -> FallbackCheckpoint:
        return FallbackCheckpoint(
            payload=build_definition(rand),
            intent=CheckpointIntent.DEFINE,
            downgraded=intent != CheckpointIntent.DEFINE,
        )

    if intent == CheckpointIntent.DEFINE:
        return definition()

    if not _DIGIT_RE.search(text):
        logger.debug(f"No numbers in section text; downgrading {intent.value} to define")
        return definition()

    shape = extract_shape(text)
    if shape is not None:
        return FallbackCheckpoint(payload=build_from_shape(shape, intent, rand), intent=intent)

    equation = extract_equation_total(text)
    if equation is not None:
        return FallbackCheckpoint(payload=build_from_equation(equation, intent), intent=intent)

    logger.debug(f"No shape or equation found; downgrading {intent.value} to define")
    return definition()
