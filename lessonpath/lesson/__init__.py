"""
Lesson playback: content parsing, phase navigation and session wiring.
"""

from .content_parser import LessonContentParser, consolidate_sections, parse_lesson_content
from .models import (
    LESSON_PHASES,
    PHASE_LABELS,
    LessonContent,
    LessonPhase,
    LessonSection,
    NavigationCommand,
    PracticeScore,
    SectionType,
    StepperState,
    available_phases,
)
from .pilot import is_perimeter_pilot
from .session import LessonSession
from .stepper import LessonStepper

__all__ = [
    "LessonPhase",
    "LESSON_PHASES",
    "PHASE_LABELS",
    "available_phases",
    "LessonContent",
    "LessonSection",
    "SectionType",
    "NavigationCommand",
    "PracticeScore",
    "StepperState",
    "LessonContentParser",
    "parse_lesson_content",
    "consolidate_sections",
    "is_perimeter_pilot",
    "LessonSession",
    "LessonStepper",
]
