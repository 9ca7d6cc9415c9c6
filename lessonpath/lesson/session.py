"""
Lesson session: one learner playing one lesson.

Owns the stepper and the checkpoint orchestrator for that lesson. The
stepper's advance gate reads the orchestrator's "may advance" signal; nothing
flows the other way.
"""
from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from loguru import logger

from lessonpath.checkpoint.cache import CheckpointCache
from lessonpath.checkpoint.models import CheckpointState
from lessonpath.checkpoint.orchestrator import CheckpointOrchestrator, TextGenerator, TutorHandoff
from lessonpath.checkpoint.retry import RetryPolicy
from lessonpath.core.config import Settings, get_settings
from lessonpath.delivery.telemetry import TelemetrySink
from lessonpath.lesson.models import LessonContent, LessonPhase, LessonSection, NavigationCommand
from lessonpath.lesson.pilot import is_perimeter_pilot
from lessonpath.lesson.stepper import CompleteListener, LessonStepper, PhaseChangeListener


class LessonSession:
    """Stepper + checkpoint orchestrator for a single lesson."""

    def __init__(
        self,
        content: LessonContent,
        lesson_id: Optional[int] = None,
        generator: Optional[TextGenerator] = None,
        *,
        cache: Optional[CheckpointCache] = None,
        telemetry: Optional[TelemetrySink] = None,
        retry_policy: Optional[RetryPolicy] = None,
        checkpoints_enabled: Optional[bool] = None,
        has_practice_questions: bool = False,
        on_phase_change: Iterable[PhaseChangeListener] = (),
        on_complete: Iterable[CompleteListener] = (),
        tutor_handoff: Optional[TutorHandoff] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            content: Parsed lesson
            lesson_id: Identifier used in cache keys, seeds and telemetry
            generator: Tutor service; None means offline (deterministic checkpoints only)
            checkpoints_enabled: Override the perimeter pilot predicate
        """
        self.settings = settings or get_settings()
        self.content = content
        self.lesson_id = lesson_id

        welcome = content.welcome
        if checkpoints_enabled is None:
            checkpoints_enabled = is_perimeter_pilot(welcome.subject, welcome.grade_band, welcome.title)

        self.orchestrator = CheckpointOrchestrator(
            lesson_id,
            content.learn_sections,
            generator,
            cache=cache,
            telemetry=telemetry,
            retry_policy=retry_policy,
            enabled=checkpoints_enabled,
            lesson_title=welcome.title,
            subject=welcome.subject or None,
            grade_band=welcome.grade_band or None,
            on_section_complete=self._on_section_complete,
            tutor_handoff=tutor_handoff,
            settings=self.settings,
        )
        self.stepper = LessonStepper(
            total_sections=content.section_count,
            has_practice_questions=has_practice_questions,
            on_phase_change=on_phase_change,
            on_complete=on_complete,
            advance_gate=self.orchestrator.may_advance,
        )
        logger.info(
            f"Lesson session '{welcome.title}' ({content.section_count} sections, "
            f"checkpoints {'on' if checkpoints_enabled else 'off'})"
        )

    def _on_section_complete(self, section_index: int) -> None:
        logger.info(f"Section {section_index} passed")

    @property
    def checkpoints_enabled(self) -> bool:
        return self.orchestrator.enabled

    @property
    def phase(self) -> LessonPhase:
        return self.stepper.current_phase

    @property
    def section_index(self) -> int:
        return self.stepper.current_section_index

    @property
    def current_section(self) -> Optional[LessonSection]:
        if self.phase != LessonPhase.LEARN or not self.content.learn_sections:
            return None
        return self.content.learn_sections[self.section_index]

    @property
    def checkpoint(self) -> Optional[CheckpointState]:
        if self.current_section is None:
            return None
        return self.orchestrator.state(self.section_index)

    @property
    def may_advance(self) -> bool:
        return self.stepper.may_leave_section

    async def activate(self) -> Optional[CheckpointState]:
        """Make sure the active learn section has its checkpoint."""
        if self.current_section is None:
            return None
        return await self.orchestrator.ensure_checkpoint(self.section_index)

    async def advance(self) -> bool:
        moved = self.stepper.next_phase()
        if moved:
            await self.activate()
        return moved

    async def retreat(self) -> bool:
        moved = self.stepper.previous_phase()
        if moved:
            await self.activate()
        return moved

    async def handle_command(self, command: NavigationCommand) -> bool:
        moved = self.stepper.handle_command(command)
        if moved:
            await self.activate()
        return moved

    def reset(self) -> None:
        self.stepper.reset()
        self.orchestrator.reset()
