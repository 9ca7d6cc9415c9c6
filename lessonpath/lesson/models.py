"""
Lesson structure and navigation state.

A lesson is played in five phases; the learn phase is split into sections,
each of which carries one checkpoint.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class LessonPhase(str, Enum):
    WELCOME = "welcome"
    LEARN = "learn"
    PRACTICE = "practice"
    REVIEW = "review"
    COMPLETE = "complete"


LESSON_PHASES: tuple[LessonPhase, ...] = (
    LessonPhase.WELCOME,
    LessonPhase.LEARN,
    LessonPhase.PRACTICE,
    LessonPhase.REVIEW,
    LessonPhase.COMPLETE,
)

PHASE_LABELS: dict[LessonPhase, str] = {
    LessonPhase.WELCOME: "Welcome",
    LessonPhase.LEARN: "Learn",
    LessonPhase.PRACTICE: "Practice",
    LessonPhase.REVIEW: "Review",
    LessonPhase.COMPLETE: "Complete",
}


def available_phases(has_practice_questions: bool) -> tuple[LessonPhase, ...]:
    """Phase sequence for a lesson; practice is skipped when there is nothing to practice."""
    if has_practice_questions:
        return LESSON_PHASES
    return tuple(p for p in LESSON_PHASES if p != LessonPhase.PRACTICE)


class NavigationCommand(str, Enum):
    """Externally triggerable navigation intents."""

    ADVANCE = "advance"
    RETREAT = "retreat"
    CONFIRM = "confirm"  # only honored on welcome and review
    CANCEL = "cancel"


class SectionType(str, Enum):
    CONCEPT = "concept"
    EXAMPLE = "example"
    EXPLANATION = "explanation"
    ACTIVITY = "activity"
    GENERAL = "general"


@dataclass
class LessonSection:
    """One chunk of learn-phase content (markdown)."""

    id: str
    title: str
    content: str
    type: SectionType = SectionType.GENERAL


@dataclass
class VocabularyTerm:
    term: str
    definition: str


@dataclass
class LessonResource:
    title: str
    url: str
    type: str = "link"  # video, article, interactive, document, link
    description: Optional[str] = None


@dataclass
class LessonWelcome:
    title: str
    subject: str = ""
    grade_band: str = ""
    objectives: list[str] = field(default_factory=list)
    estimated_minutes: Optional[int] = None
    hook: Optional[str] = None


@dataclass
class LessonContent:
    """Parsed lesson, ready for the stepper."""

    welcome: LessonWelcome
    learn_sections: list[LessonSection] = field(default_factory=list)
    vocabulary: list[VocabularyTerm] = field(default_factory=list)
    summary: Optional[str] = None
    resources: list[LessonResource] = field(default_factory=list)
    raw_content: str = ""

    @property
    def section_count(self) -> int:
        return len(self.learn_sections)


@dataclass
class PracticeScore:
    correct: int = 0
    total: int = 0


@dataclass
class StepperState:
    current_phase: LessonPhase = LessonPhase.WELCOME
    current_section_index: int = 0
    completed_phases: list[LessonPhase] = field(default_factory=list)
    practice_score: PracticeScore = field(default_factory=PracticeScore)
