"""
Seeded pseudo-randomness for checkpoint generation.

Mulberry32 drives template selection in the fallback generator and the
permutation of answer options. The same seed always produces the same
sequence, so cached and regenerated checkpoints agree.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

from lessonpath.generation.payload import CheckpointIntent

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF

# Seed layout: lesson_id * 10000 + section_index * 10 + intent offset
INTENT_OFFSETS: dict[CheckpointIntent, int] = {
    CheckpointIntent.DEFINE: 1,
    CheckpointIntent.COMPUTE: 2,
    CheckpointIntent.SCENARIO: 3,
}
SHUFFLE_SEED_SALT = 11


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply, low 32 bits."""
    return (a * b) & _MASK32


class Mulberry32:
    """Mulberry32 generator (32-bit state, floats in [0, 1))."""

    def __init__(self, seed: int):
        self._state = seed & _MASK32

    def next_float(self) -> float:
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        t = self._state
        x = _imul(t ^ (t >> 15), 1 | t)
        x ^= (x + _imul(x ^ (x >> 7), 61 | x)) & _MASK32
        return ((x ^ (x >> 14)) & _MASK32) / 4294967296

    def __call__(self) -> float:
        return self.next_float()


def pick(items: Sequence[T], rand: Callable[[], float]) -> T:
    """Pick one item using the generator; index is clamped to the sequence."""
    if not items:
        raise ValueError("pick() requires at least one item")
    idx = int(rand() * len(items))
    idx = max(0, min(len(items) - 1, idx))
    return items[idx]


def shuffle_with_correct_index(
    options: Sequence[str],
    correct_index: int,
    seed: int,
) -> tuple[list[str], int]:
    """
    Deterministically permute options.

    Wrong options are Fisher-Yates shuffled with Mulberry32(seed) and the
    correct option is placed at ``abs(seed) % len(options)``.

    Returns:
        (options, correct_index). When fewer than 3 distinct non-empty
        options are supplied the input is returned unchanged.
    """
    safe = [str(o if o is not None else "").strip() for o in options]
    if len({o for o in safe if o}) < 3:
        return list(options), correct_index

    correct = max(0, min(correct_index, len(safe) - 1))
    correct_text = safe[correct]
    wrongs = [opt for idx, opt in enumerate(safe) if idx != correct]

    rand = Mulberry32(seed)
    for i in range(len(wrongs) - 1, 0, -1):
        j = int(rand() * (i + 1))
        wrongs[i], wrongs[j] = wrongs[j], wrongs[i]

    target = abs(seed) % len(safe)
    arranged = list(wrongs)
    arranged.insert(target, correct_text)
    return arranged, target


def seed_base(lesson_id: int | None, section_index: int) -> int:
    return (lesson_id or 0) * 10_000 + section_index * 10


def generator_seed(lesson_id: int | None, section_index: int, intent: CheckpointIntent) -> int:
    """Seed for template selection in the fallback generator."""
    return seed_base(lesson_id, section_index) + INTENT_OFFSETS[intent]


def shuffle_seed(lesson_id: int | None, section_index: int, intent: CheckpointIntent) -> int:
    """Seed for option shuffling; shared by AI and fallback checkpoints."""
    return generator_seed(lesson_id, section_index, intent) + SHUFFLE_SEED_SALT
