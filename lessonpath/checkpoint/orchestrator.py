"""
Checkpoint Orchestrator.

Drives one checkpoint question per lesson section:

1. Cache read-through: a valid cached checkpoint is used as-is
2. Remote generation through the tutor service, retried with backoff
3. Parsing + validation of the response
4. Deterministic fallback when the service is unavailable or its output is unusable
5. Seeded option shuffle, cache write, telemetry

State is keyed by section index, so a late result for a section the learner
has already left lands on that section and nowhere else.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import Any, Protocol

from loguru import logger

from lessonpath.checkpoint.cache import (
    CacheEntry,
    CheckpointCache,
    cache_key,
    read_entry,
    write_entry,
)
from lessonpath.checkpoint.hints import (
    explain_section_request,
    hint_for_section,
    tutor_hint_request,
)
from lessonpath.checkpoint.models import (
    CheckpointError,
    CheckpointIdle,
    CheckpointLoading,
    CheckpointReady,
    CheckpointSource,
    CheckpointState,
    CheckpointStatus,
    FallbackReason,
)
from lessonpath.checkpoint.remediation import (
    QuickReview,
    RemediationState,
    RemediationTrigger,
    build_quick_review,
)
from lessonpath.checkpoint.retry import GenerationResult, RetryPolicy
from lessonpath.core.config import Settings, get_settings
from lessonpath.core.exceptions import (
    InvalidPayload,
    TerminalGenerationFailure,
    TransientRemoteFailure,
)
from lessonpath.delivery.telemetry import TelemetrySink, safe_track
from lessonpath.generation.fallback import generate_fallback_checkpoint
from lessonpath.generation.parsing import parse_checkpoint_response
from lessonpath.generation.payload import CheckpointIntent, CheckpointPayload, intent_for_section
from lessonpath.generation.prompts import build_system_prompt, build_user_prompt
from lessonpath.generation.seeded import generator_seed, shuffle_seed, shuffle_with_correct_index
from lessonpath.generation.shapes import extract_shape
from lessonpath.generation.validator import is_valid_checkpoint_payload, validation_issues

TERMINAL_ERROR_MESSAGE = "Unable to generate checkpoint right now."


class TextGenerator(Protocol):
    """Remote text generation (the tutor service)."""

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        mode: str = "learning",
    ) -> str:
        ...


class SectionLike(Protocol):
    title: str
    content: str


TutorHandoff = Callable[[str], None]
SectionCompleteCallback = Callable[[int], None]


def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a fire-and-forget callback; failures are logged, not raised."""
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as e:
        logger.error(f"Callback {getattr(callback, '__name__', callback)!r} failed: {e}")


class CheckpointOrchestrator:
    """
    Per-section checkpoint state machine for one lesson session.

    idle -> loading -> ready | error. Ready checkpoints carry the learner's
    selection; a correct selection is terminal ("passed").
    """

    def __init__(
        self,
        lesson_id: int | None,
        sections: Sequence[SectionLike],
        generator: TextGenerator | None = None,
        *,
        cache: CheckpointCache | None = None,
        telemetry: TelemetrySink | None = None,
        retry_policy: RetryPolicy | None = None,
        enabled: bool = True,
        lesson_title: str | None = None,
        subject: str | None = None,
        grade_band: str | None = None,
        on_section_complete: SectionCompleteCallback | None = None,
        tutor_handoff: TutorHandoff | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.lesson_id = lesson_id
        self.sections = list(sections)
        self.generator = generator
        self.cache = cache
        self.telemetry = telemetry
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.settings.checkpoint_max_attempts,
            base_delay_ms=self.settings.checkpoint_backoff_ms,
        )
        self.enabled = enabled
        self.lesson_title = lesson_title
        self.subject = subject
        self.grade_band = grade_band
        self.on_section_complete = on_section_complete
        self.tutor_handoff = tutor_handoff
        self.remediation = RemediationTrigger(
            threshold=self.settings.remediation_threshold,
            telemetry=telemetry,
            lesson_id=lesson_id,
        )

        self._states: dict[int, CheckpointState] = {}
        self._wrong_attempts: dict[int, int] = {}
        self._hint_shown: dict[int, bool] = {}
        # Bumped on reset so in-flight generations from before it are dropped
        self._epoch = 0

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def total_sections(self) -> int:
        return len(self.sections)

    def intent_for(self, section_index: int) -> CheckpointIntent:
        return intent_for_section(section_index)

    def state(self, section_index: int) -> CheckpointState:
        return self._states.get(section_index, CheckpointIdle())

    def is_passed(self, section_index: int) -> bool:
        state = self.state(section_index)
        return isinstance(state, CheckpointReady) and state.passed

    def may_advance(self, section_index: int) -> bool:
        """
        Whether the learner may move past this section.

        Blocked until the checkpoint is passed, except when checkpoints are
        disabled or generation failed terminally.
        """
        if not self.enabled or self._section(section_index) is None:
            return True
        state = self.state(section_index)
        if isinstance(state, CheckpointError):
            return True
        return isinstance(state, CheckpointReady) and state.passed

    def wrong_attempts(self, section_index: int) -> int:
        return self._wrong_attempts.get(section_index, 0)

    def _section(self, section_index: int) -> SectionLike | None:
        if 0 <= section_index < len(self.sections):
            return self.sections[section_index]
        return None

    def _event(self, section_index: int, **fields: Any) -> dict[str, Any]:
        return {"lesson_id": self.lesson_id, "section_index": section_index, **fields}

    # =========================================================================
    # Generation
    # =========================================================================

    async def ensure_checkpoint(self, section_index: int) -> CheckpointState:
        """
        Make sure the section has a checkpoint, generating one if needed.

        A section that is already loading, ready or in error is left alone, so
        a second trigger while loading is a no-op.
        """
        if not self.enabled or self._section(section_index) is None:
            return self.state(section_index)

        existing = self._states.get(section_index)
        if existing is not None and existing.status != CheckpointStatus.IDLE:
            return existing

        await self._generate(section_index)
        return self.state(section_index)

    async def retry(self, section_index: int) -> CheckpointState:
        """Try again after a terminal error (the "try again" affordance)."""
        if isinstance(self._states.get(section_index), CheckpointError):
            del self._states[section_index]
        return await self.ensure_checkpoint(section_index)

    async def _generate(self, section_index: int) -> None:
        section = self._section(section_index)
        assert section is not None
        intent = self.intent_for(section_index)
        key = cache_key(self.lesson_id, section_index, intent)

        cached = read_entry(self.cache, key)
        if cached is not None and is_valid_checkpoint_payload(cached.payload, cached.intent):
            self._states[section_index] = CheckpointReady(
                payload=cached.payload,
                intent=cached.intent,
                source=CheckpointSource.CACHE,
            )
            logger.debug(f"Checkpoint cache hit: {key}")
            safe_track(
                self.telemetry,
                "checkpoint_generated",
                self._event(section_index, source=CheckpointSource.CACHE.value, intent=cached.intent.value),
            )
            return

        # Must be set before the first await: this is the single-flight guard
        self._states[section_index] = CheckpointLoading()
        epoch = self._epoch

        result = await self._request_remote(section, intent)

        if epoch != self._epoch:
            logger.debug(f"Dropping checkpoint for section {section_index}: session was reset")
            return

        if not result.ok:
            logger.warning(
                f"Tutor unavailable for section {section_index} after {result.attempts} attempts: {result.error}"
            )
            self._resolve_fallback(section_index, section, intent, key, FallbackReason.ASSISTANT_UNAVAILABLE)
            return

        try:
            payload = self._accept_remote(result.value or "", intent, section_index)
        except InvalidPayload as e:
            logger.warning(f"Rejected generated checkpoint for section {section_index}: {e} {e.reasons}")
            self._resolve_fallback(section_index, section, intent, key, FallbackReason.GENERATION_ERROR)
            return

        self._states[section_index] = CheckpointReady(payload=payload, intent=intent, source=CheckpointSource.AI)
        write_entry(self.cache, key, CacheEntry(payload=payload, intent=intent))
        logger.info(f"Generated {intent.value} checkpoint for section {section_index}")
        safe_track(
            self.telemetry,
            "checkpoint_generated",
            self._event(section_index, source=CheckpointSource.AI.value, intent=intent.value),
        )

    async def _request_remote(self, section: SectionLike, intent: CheckpointIntent) -> GenerationResult[str]:
        generator = self.generator
        if generator is None:
            return GenerationResult(ok=False, error=TransientRemoteFailure("No tutor service configured"))

        system_prompt = build_system_prompt(intent, grade_band=self.grade_band, subject=self.subject)
        prompt = build_user_prompt(
            section.content,
            section_title=section.title,
            lesson_title=self.lesson_title,
            content_chars=self.settings.checkpoint_content_chars,
        )

        async def attempt() -> str:
            message = await generator.generate(
                prompt,
                system_prompt=system_prompt,
                mode=self.settings.tutor_mode,
            )
            if not message or not message.strip():
                raise TransientRemoteFailure("Empty response from tutor service")
            return message

        return await self.retry_policy.run(attempt)

    def _accept_remote(self, message: str, intent: CheckpointIntent, section_index: int) -> CheckpointPayload:
        """Parse, validate and shuffle a remote response."""
        candidate = parse_checkpoint_response(message)
        issues = validation_issues(candidate, intent)
        if issues:
            raise InvalidPayload("Invalid checkpoint payload", issues)
        return self._shuffled(candidate, intent, section_index)

    def _shuffled(self, payload: CheckpointPayload, intent: CheckpointIntent, section_index: int) -> CheckpointPayload:
        options, correct_index = shuffle_with_correct_index(
            payload.options,
            payload.correct_index,
            shuffle_seed(self.lesson_id, section_index, intent),
        )
        return payload.model_copy(update={"options": options, "correct_index": correct_index})

    def _build_fallback(
        self,
        section_index: int,
        section: SectionLike,
        intent: CheckpointIntent,
    ) -> tuple[CheckpointPayload, CheckpointIntent]:
        """
        Raises:
            TerminalGenerationFailure: The deterministic generator produced nothing usable.
        """
        fallback = generate_fallback_checkpoint(
            section.content,
            intent,
            generator_seed(self.lesson_id, section_index, intent),
        )
        if fallback is None:
            raise TerminalGenerationFailure("Section has no content to build a checkpoint from")
        issues = validation_issues(fallback.payload, fallback.intent)
        if issues:
            raise TerminalGenerationFailure(f"Fallback checkpoint failed validation: {issues}")
        return self._shuffled(fallback.payload, intent, section_index), fallback.intent

    def _resolve_fallback(
        self,
        section_index: int,
        section: SectionLike,
        intent: CheckpointIntent,
        key: str,
        reason: FallbackReason,
    ) -> None:
        try:
            payload, effective_intent = self._build_fallback(section_index, section, intent)
        except TerminalGenerationFailure as e:
            logger.error(f"No checkpoint for section {section_index}: {e}")
            self._states[section_index] = CheckpointError(message=TERMINAL_ERROR_MESSAGE)
            safe_track(
                self.telemetry,
                "checkpoint_error",
                self._event(section_index, intent=intent.value, reason=reason.value, error=str(e)),
            )
            return

        self._states[section_index] = CheckpointReady(
            payload=payload,
            intent=effective_intent,
            source=CheckpointSource.FALLBACK,
            reason=reason,
        )
        write_entry(self.cache, key, CacheEntry(payload=payload, intent=effective_intent))
        logger.info(
            f"Fallback {effective_intent.value} checkpoint for section {section_index} ({reason.value})"
        )
        safe_track(
            self.telemetry,
            "checkpoint_generated",
            self._event(
                section_index,
                source=CheckpointSource.FALLBACK.value,
                reason=reason.value,
                intent=intent.value,
                effective_intent=effective_intent.value,
            ),
        )

    # =========================================================================
    # Answers
    # =========================================================================

    def select_option(self, section_index: int, selected_index: int) -> CheckpointReady | None:
        """
        Record the learner's choice.

        Ignored (returns None) unless the checkpoint is ready, not yet passed
        and the index names one of its options.
        """
        state = self._states.get(section_index)
        if not isinstance(state, CheckpointReady) or state.passed:
            return None
        if not 0 <= selected_index < len(state.payload.options):
            return None

        is_correct = selected_index == state.payload.correct_index
        updated = replace(state, selected_index=selected_index, is_correct=is_correct)
        self._states[section_index] = updated

        if not is_correct:
            self._wrong_attempts[section_index] = self.wrong_attempts(section_index) + 1

        safe_track(
            self.telemetry,
            "checkpoint_answered",
            self._event(
                section_index,
                intent=state.intent.value,
                selected_index=selected_index,
                is_correct=is_correct,
            ),
        )

        if is_correct:
            self.remediation.clear(section_index)
            _notify(self.on_section_complete, section_index)
        else:
            self.remediation.observe(section_index, self.wrong_attempts(section_index), passed=False)

        return updated

    # =========================================================================
    # Quick Review
    # =========================================================================

    def quick_review(self, section_index: int) -> QuickReview:
        section = self._section(section_index)
        return build_quick_review(extract_shape(section.content if section else ""))

    def quick_review_state(self, section_index: int) -> RemediationState:
        return self.remediation.state(section_index)

    def answer_quick_review(self, section_index: int, selected_index: int) -> RemediationState | None:
        return self.remediation.answer(section_index, selected_index, self.quick_review(section_index))

    # =========================================================================
    # Hints & tutor hand-off
    # =========================================================================

    def hint(self, section_index: int) -> str | None:
        """Deterministic hint; available once the checkpoint is ready."""
        state = self.state(section_index)
        section = self._section(section_index)
        if not isinstance(state, CheckpointReady) or section is None:
            return None
        return hint_for_section(state.intent, section.content)

    def is_hint_shown(self, section_index: int) -> bool:
        return self._hint_shown.get(section_index, False)

    def toggle_hint(self, section_index: int) -> bool:
        state = self.state(section_index)
        if not isinstance(state, CheckpointReady):
            return False
        shown = not self.is_hint_shown(section_index)
        self._hint_shown[section_index] = shown
        safe_track(
            self.telemetry,
            "checkpoint_hint_clicked",
            self._event(section_index, intent=state.intent.value, source="deterministic"),
        )
        return shown

    def ask_for_hint(self, section_index: int) -> bool:
        """Forward the question to the tutor surface without the answer."""
        state = self.state(section_index)
        section = self._section(section_index)
        if self.tutor_handoff is None or section is None or not isinstance(state, CheckpointReady):
            return False
        safe_track(
            self.telemetry,
            "checkpoint_hint_clicked",
            self._event(section_index, intent=state.intent.value, source="tutor"),
        )
        _notify(
            self.tutor_handoff,
            tutor_hint_request(section.title, state.payload.question, state.payload.options),
        )
        return True

    def ask_to_explain(self, section_index: int) -> bool:
        section = self._section(section_index)
        if self.tutor_handoff is None or section is None:
            return False
        _notify(self.tutor_handoff, explain_section_request(section.title))
        return True

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def reset(self) -> None:
        """Forget every checkpoint, counter and quick review for this lesson."""
        self._epoch += 1
        self._states.clear()
        self._wrong_attempts.clear()
        self._hint_shown.clear()
        self.remediation.reset()
