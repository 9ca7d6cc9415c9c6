"""
Lesson Stepper.

Linear navigation through the lesson phases and, inside the learn phase,
through its sections:

    welcome -> learn[0..n-1] -> practice -> review -> complete

Practice is skipped for lessons without practice questions. Leaving a learn
section forward can be gated by a read-only predicate (normally "has this
section's checkpoint been passed"); the stepper never changes checkpoint
state itself.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import Optional

from loguru import logger

from lessonpath.lesson.models import (
    LessonPhase,
    NavigationCommand,
    PracticeScore,
    StepperState,
    available_phases,
)

PhaseChangeListener = Callable[[LessonPhase], None]
CompleteListener = Callable[[], None]
AdvanceGate = Callable[[int], bool]

CONFIRMABLE_PHASES = (LessonPhase.WELCOME, LessonPhase.REVIEW)


class LessonStepper:
    """Phase and section navigation state machine for one lesson session."""

    def __init__(
        self,
        total_sections: int = 1,
        has_practice_questions: bool = True,
        on_phase_change: Iterable[PhaseChangeListener] = (),
        on_complete: Iterable[CompleteListener] = (),
        advance_gate: Optional[AdvanceGate] = None,
    ):
        """
        Args:
            total_sections: Number of learn sections (at least one position is kept)
            has_practice_questions: Include the practice phase
            on_phase_change: Called with the new phase after every phase change
            on_complete: Called once when the lesson reaches the complete phase
            advance_gate: Given the current section index, whether the learner may move forward
        """
        self.total_sections = max(1, total_sections)
        self.has_practice_questions = has_practice_questions
        self.phases = available_phases(has_practice_questions)
        self._phase_listeners = list(on_phase_change)
        self._complete_listeners = list(on_complete)
        self.advance_gate = advance_gate
        self._state = StepperState()
        self._completion_fired = False

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> StepperState:
        return self._state

    @property
    def current_phase(self) -> LessonPhase:
        return self._state.current_phase

    @property
    def current_section_index(self) -> int:
        return self._state.current_section_index

    @property
    def practice_score(self) -> PracticeScore:
        return self._state.practice_score

    def _phase_index(self) -> int:
        return self.phases.index(self._state.current_phase)

    def _in_learn(self) -> bool:
        return self._state.current_phase == LessonPhase.LEARN

    def is_phase_complete(self, phase: LessonPhase) -> bool:
        return phase in self._state.completed_phases

    @property
    def can_go_next(self) -> bool:
        if self._in_learn() and self._state.current_section_index < self.total_sections - 1:
            return True
        return self._phase_index() < len(self.phases) - 1

    @property
    def can_go_back(self) -> bool:
        if self._in_learn() and self._state.current_section_index > 0:
            return True
        return self._phase_index() > 0

    @property
    def may_leave_section(self) -> bool:
        """Whether the advance gate lets the learner move past the current learn section."""
        if not self._in_learn() or self.advance_gate is None:
            return True
        return bool(self.advance_gate(self._state.current_section_index))

    @property
    def progress(self) -> float:
        """Overall progress, 0-100; refined by section position inside learn."""
        index = self._phase_index()
        span = 100.0 / (len(self.phases) - 1)
        start = index * span
        if self._in_learn() and self.total_sections > 1:
            return start + span * (self._state.current_section_index / self.total_sections)
        return start

    # =========================================================================
    # Transitions
    # =========================================================================

    def _set_phase(self, phase: LessonPhase, section_index: int, mark_complete: Optional[LessonPhase] = None) -> None:
        previous = self._state.current_phase
        completed = self._state.completed_phases
        if mark_complete is not None and mark_complete not in completed:
            completed = [*completed, mark_complete]
        self._state = replace(
            self._state,
            current_phase=phase,
            current_section_index=section_index,
            completed_phases=completed,
        )
        if phase != previous:
            self._notify_phase_change(phase)

    def _notify_phase_change(self, phase: LessonPhase) -> None:
        logger.debug(f"Lesson phase -> {phase.value}")
        for listener in self._phase_listeners:
            try:
                listener(phase)
            except Exception as e:
                logger.error(f"Phase change listener failed: {e}")

        if phase == LessonPhase.COMPLETE and not self._completion_fired:
            self._completion_fired = True
            for listener in self._complete_listeners:
                try:
                    listener()
                except Exception as e:
                    logger.error(f"Completion listener failed: {e}")

    def go_to_phase(self, phase: LessonPhase) -> bool:
        """Jump to a phase (section index resets to 0). Unavailable phases are ignored."""
        if phase not in self.phases:
            return False
        self._set_phase(phase, 0)
        return True

    def next_phase(self) -> bool:
        """
        Advance one step: the next learn section if there is one, else the next phase.

        Returns:
            True if the position changed.
        """
        if not self.may_leave_section:
            logger.debug(f"Advance blocked at section {self._state.current_section_index}")
            return False

        if self._in_learn() and self._state.current_section_index < self.total_sections - 1:
            self._state = replace(self._state, current_section_index=self._state.current_section_index + 1)
            return True

        index = self._phase_index()
        if index >= len(self.phases) - 1:
            return False
        current = self._state.current_phase
        self._set_phase(self.phases[index + 1], 0, mark_complete=current)
        return True

    def previous_phase(self) -> bool:
        """Step back; re-entering learn from the phase after it resumes at its last section."""
        if self._in_learn() and self._state.current_section_index > 0:
            self._state = replace(self._state, current_section_index=self._state.current_section_index - 1)
            return True

        index = self._phase_index()
        if index <= 0:
            return False
        target = self.phases[index - 1]
        section_index = self.total_sections - 1 if target == LessonPhase.LEARN else 0
        self._set_phase(target, section_index)
        return True

    def next_section(self) -> bool:
        if self._state.current_section_index >= self.total_sections - 1:
            return False
        if not self.may_leave_section:
            return False
        self._state = replace(self._state, current_section_index=self._state.current_section_index + 1)
        return True

    def previous_section(self) -> bool:
        if self._state.current_section_index <= 0:
            return False
        self._state = replace(self._state, current_section_index=self._state.current_section_index - 1)
        return True

    def mark_phase_complete(self, phase: LessonPhase) -> None:
        if phase not in self._state.completed_phases:
            self._state = replace(self._state, completed_phases=[*self._state.completed_phases, phase])

    def update_practice_score(self, correct: int, total: int) -> None:
        self._state = replace(self._state, practice_score=PracticeScore(correct=correct, total=total))

    def reset(self) -> None:
        """Back to the first section of welcome with nothing completed."""
        previous = self._state.current_phase
        self._state = StepperState()
        self._completion_fired = False
        if previous != LessonPhase.WELCOME:
            self._notify_phase_change(LessonPhase.WELCOME)

    # =========================================================================
    # Commands
    # =========================================================================

    def handle_command(self, command: NavigationCommand) -> bool:
        """
        Map an external navigation intent onto a transition.

        CONFIRM only advances from welcome and review; practice always needs an
        explicit answer.
        """
        if command == NavigationCommand.ADVANCE:
            return self.can_go_next and self.next_phase()
        if command in (NavigationCommand.RETREAT, NavigationCommand.CANCEL):
            return self.can_go_back and self.previous_phase()
        if command == NavigationCommand.CONFIRM:
            if self._state.current_phase not in CONFIRMABLE_PHASES:
                return False
            return self.can_go_next and self.next_phase()
        return False
