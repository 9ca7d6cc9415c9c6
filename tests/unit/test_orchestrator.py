"""
Unit tests for CheckpointOrchestrator.

Covers the generation pipeline (cache, remote, fallback, error), answer
handling, remediation wiring, hints and tutor hand-off.
Run: pytest tests/unit/test_orchestrator.py -v
"""
import asyncio
import json

import pytest

from lessonpath.checkpoint.cache import CacheEntry, MemoryCache, cache_key, read_entry, write_entry
from lessonpath.checkpoint.models import (
    CheckpointError,
    CheckpointIdle,
    CheckpointLoading,
    CheckpointReady,
    CheckpointSource,
    CheckpointStatus,
    FallbackReason,
)
from lessonpath.checkpoint.orchestrator import CheckpointOrchestrator
from lessonpath.core.exceptions import TransientRemoteFailure
from lessonpath.generation.payload import CheckpointIntent, CheckpointPayload
from lessonpath.generation.seeded import shuffle_seed
from lessonpath.lesson.models import LessonSection

LESSON_ID = 7


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def build(perimeter_sections, settings, retry_policy, telemetry, cache):
    """Factory for orchestrators over the perimeter sections."""

    def _build(generator=None, sections=None, **kwargs):
        kwargs.setdefault("cache", cache)
        return CheckpointOrchestrator(
            LESSON_ID,
            sections if sections is not None else perimeter_sections,
            generator,
            telemetry=telemetry,
            retry_policy=retry_policy,
            settings=settings,
            **kwargs,
        )

    return _build


class GatedGenerator:
    """Blocks every call until `release` is set."""

    def __init__(self, response):
        self.response = response
        self.release = asyncio.Event()
        self.calls = 0

    async def generate(self, prompt, *, system_prompt=None, mode="learning"):
        self.calls += 1
        await self.release.wait()
        return self.response


async def ready(orchestrator, index):
    state = await orchestrator.ensure_checkpoint(index)
    assert isinstance(state, CheckpointReady)
    return state


class TestIntents:
    def test_intents_cycle(self, build):
        orchestrator = build()
        assert [orchestrator.intent_for(i) for i in range(4)] == [
            CheckpointIntent.DEFINE,
            CheckpointIntent.COMPUTE,
            CheckpointIntent.SCENARIO,
            CheckpointIntent.DEFINE,
        ]

    def test_initial_state_idle(self, build):
        assert isinstance(build().state(0), CheckpointIdle)


class TestRemoteGeneration:
    @pytest.mark.asyncio
    async def test_valid_response_is_shuffled_and_cached(
        self, build, make_generator, valid_compute_response, cache, telemetry
    ):
        generator = make_generator(valid_compute_response)
        orchestrator = build(generator)

        state = await ready(orchestrator, 1)

        assert state.source == CheckpointSource.AI
        assert state.reason is None
        assert state.intent == CheckpointIntent.COMPUTE
        expected_index = shuffle_seed(LESSON_ID, 1, CheckpointIntent.COMPUTE) % 4
        assert state.payload.correct_index == expected_index
        assert state.payload.correct_option == "12 feet"
        assert sorted(state.payload.options) == ["12 feet", "3 feet", "6 feet", "9 feet"]

        cached = read_entry(cache, cache_key(LESSON_ID, 1, CheckpointIntent.COMPUTE))
        assert cached.payload == state.payload
        assert telemetry.names() == ["checkpoint_generated"]
        assert telemetry.events[0][1]["source"] == "ai"

    @pytest.mark.asyncio
    async def test_request_carries_intent_rules_and_excerpt(self, build, make_generator, valid_compute_response):
        generator = make_generator(valid_compute_response)
        await build(generator, lesson_title="Perimeter").ensure_checkpoint(1)

        call = generator.calls[0]
        assert "Intent: compute." in call["system_prompt"]
        assert "A square has each side 3 feet." in call["prompt"]
        assert "Lesson title: Perimeter" in call["prompt"]
        assert call["mode"] == "learning"

    @pytest.mark.asyncio
    async def test_transient_failure_then_success(self, build, make_generator, valid_compute_response, sleep):
        generator = make_generator(TransientRemoteFailure("503"), valid_compute_response)
        state = await ready(build(generator), 1)
        assert state.source == CheckpointSource.AI
        assert len(generator.calls) == 2
        assert sleep.delays == [pytest.approx(0.4)]


class TestFallback:
    @pytest.mark.asyncio
    async def test_assistant_unavailable_after_three_attempts(self, build, make_generator, sleep, telemetry):
        generator = make_generator(TransientRemoteFailure("network down"))
        state = await ready(build(generator), 1)

        assert len(generator.calls) == 3
        assert sleep.delays == [pytest.approx(0.4), pytest.approx(0.8)]
        assert state.source == CheckpointSource.FALLBACK
        assert state.reason == FallbackReason.ASSISTANT_UNAVAILABLE
        assert state.intent == CheckpointIntent.COMPUTE
        assert state.payload.correct_option == "12 feet"
        assert state.payload.explanation == "3 + 3 + 3 + 3 = 12 feet."
        assert state.payload.correct_index == shuffle_seed(LESSON_ID, 1, CheckpointIntent.COMPUTE) % 4
        event = telemetry.events[-1][1]
        assert event["source"] == "fallback"
        assert event["reason"] == "assistant_unavailable"

    @pytest.mark.asyncio
    async def test_no_generator_uses_fallback(self, build, sleep):
        state = await ready(build(None), 1)
        assert state.reason == FallbackReason.ASSISTANT_UNAVAILABLE
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_empty_message_counts_as_transient(self, build, make_generator):
        generator = make_generator("   ")
        state = await ready(build(generator), 1)
        assert len(generator.calls) == 3
        assert state.reason == FallbackReason.ASSISTANT_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_unparsable_response_is_not_retried(self, build, make_generator):
        generator = make_generator("Sorry, I can't do that right now.")
        state = await ready(build(generator), 1)
        assert len(generator.calls) == 1
        assert state.reason == FallbackReason.GENERATION_ERROR

    @pytest.mark.asyncio
    async def test_invalid_payload_triggers_fallback(self, build, make_generator):
        coaching = json.dumps(
            {
                "question": "What is a good study strategy for 12?",
                "options": ["Ask a teacher", "Memorize it", "Practice more"],
                "correctIndex": 0,
                "explanation": "Study strategies help.",
            }
        )
        state = await ready(build(make_generator(coaching)), 1)
        assert state.source == CheckpointSource.FALLBACK
        assert state.reason == FallbackReason.GENERATION_ERROR

    @pytest.mark.asyncio
    async def test_compute_without_numbers_rejected(self, build, make_generator):
        wordy = json.dumps(
            {
                "question": "What does perimeter mean?",
                "options": ["Distance around", "Space inside", "Corners"],
                "correctIndex": 0,
                "explanation": "Perimeter is the distance around.",
            }
        )
        state = await ready(build(make_generator(wordy)), 1)
        assert state.reason == FallbackReason.GENERATION_ERROR

    @pytest.mark.asyncio
    async def test_ungrounded_scenario_downgrades_to_define(self, build):
        sections = [
            LessonSection(id=f"s{i}", title=f"Part {i}", content="Perimeter is the distance around a shape.")
            for i in range(3)
        ]
        state = await ready(build(None, sections=sections), 2)
        assert state.intent == CheckpointIntent.DEFINE
        assert state.payload.correct_option == "The distance around the outside of a shape"

    @pytest.mark.asyncio
    async def test_fallback_is_cached_with_effective_intent(self, build, cache):
        sections = [LessonSection(id="s0", title="A", content="No numbers here.")] * 3
        await build(None, sections=sections).ensure_checkpoint(1)
        cached = read_entry(cache, cache_key(LESSON_ID, 1, CheckpointIntent.COMPUTE))
        assert cached.intent == CheckpointIntent.DEFINE


class TestTerminalError:
    @pytest.mark.asyncio
    async def test_blank_section_is_non_blocking_error(self, build, make_generator, telemetry):
        sections = [LessonSection(id="s0", title="Empty", content="   ")]
        orchestrator = build(make_generator("not json"), sections=sections)

        state = await orchestrator.ensure_checkpoint(0)

        assert isinstance(state, CheckpointError)
        assert state.message == "Unable to generate checkpoint right now."
        assert orchestrator.may_advance(0)
        assert "checkpoint_error" in telemetry.names()

    @pytest.mark.asyncio
    async def test_retry_regenerates(self, build, make_generator):
        sections = [LessonSection(id="s0", title="Empty", content="")]
        generator = make_generator("not json")
        orchestrator = build(generator, sections=sections)
        await orchestrator.ensure_checkpoint(0)
        await orchestrator.ensure_checkpoint(0)
        assert len(generator.calls) == 1

        await orchestrator.retry(0)
        assert len(generator.calls) == 2


class TestCache:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_generation(self, build, make_generator, cache, telemetry):
        payload = CheckpointPayload(
            question="A square has sides of 3 feet. What is the perimeter?",
            options=["9 feet", "12 feet", "3 feet"],
            correct_index=1,
            explanation="3 + 3 + 3 + 3 = 12 feet.",
        )
        write_entry(cache, cache_key(LESSON_ID, 1, CheckpointIntent.COMPUTE), CacheEntry(payload, CheckpointIntent.COMPUTE))
        generator = make_generator(TransientRemoteFailure("should not be called"))

        state = await ready(build(generator), 1)

        assert state.source == CheckpointSource.CACHE
        assert state.payload == payload
        assert generator.calls == []
        assert telemetry.events[0][1]["source"] == "cache"

    @pytest.mark.asyncio
    async def test_invalid_cached_payload_regenerates(self, build, make_generator, valid_compute_response, cache):
        bad = CheckpointPayload(question="Q", options=["a", "b"], correct_index=0, explanation="E")
        write_entry(cache, cache_key(LESSON_ID, 1, CheckpointIntent.COMPUTE), CacheEntry(bad, CheckpointIntent.COMPUTE))
        generator = make_generator(valid_compute_response)
        state = await ready(build(generator), 1)
        assert state.source == CheckpointSource.AI
        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_corrupt_cache_regenerates(self, build, cache):
        cache.set(cache_key(LESSON_ID, 1, CheckpointIntent.COMPUTE), "{broken")
        state = await ready(build(None), 1)
        assert state.source == CheckpointSource.FALLBACK

    @pytest.mark.asyncio
    async def test_reload_shows_same_question(self, build, cache):
        first = await ready(build(None), 1)
        second = await ready(build(None), 1)
        assert second.source == CheckpointSource.CACHE
        assert second.payload == first.payload

    @pytest.mark.asyncio
    async def test_fallback_is_reproducible_without_cache(self, build):
        first = await ready(build(None, cache=None), 2)
        second = await ready(build(None, cache=None), 2)
        assert first.payload == second.payload


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_second_trigger_while_loading_is_noop(self, build, valid_compute_response):
        generator = GatedGenerator(valid_compute_response)
        orchestrator = build(generator)

        task = asyncio.create_task(orchestrator.ensure_checkpoint(1))
        await asyncio.sleep(0)
        assert isinstance(orchestrator.state(1), CheckpointLoading)

        again = await orchestrator.ensure_checkpoint(1)
        assert again.status == CheckpointStatus.LOADING
        assert generator.calls == 1

        generator.release.set()
        await task
        assert orchestrator.state(1).status == CheckpointStatus.READY

    @pytest.mark.asyncio
    async def test_late_result_lands_on_its_own_section(self, build, valid_compute_response):
        generator = GatedGenerator(valid_compute_response)
        orchestrator = build(generator)

        task = asyncio.create_task(orchestrator.ensure_checkpoint(1))
        await asyncio.sleep(0)
        generator.release.set()
        await task

        assert isinstance(orchestrator.state(1), CheckpointReady)
        assert isinstance(orchestrator.state(0), CheckpointIdle)
        assert isinstance(orchestrator.state(2), CheckpointIdle)

    @pytest.mark.asyncio
    async def test_result_after_reset_is_dropped(self, build, valid_compute_response):
        generator = GatedGenerator(valid_compute_response)
        orchestrator = build(generator)

        task = asyncio.create_task(orchestrator.ensure_checkpoint(1))
        await asyncio.sleep(0)
        orchestrator.reset()
        generator.release.set()
        await task

        assert isinstance(orchestrator.state(1), CheckpointIdle)


class TestAnswers:
    @pytest.mark.asyncio
    async def test_correct_answer_passes_section(self, build, telemetry):
        completed = []
        orchestrator = build(None, on_section_complete=completed.append)
        state = await ready(orchestrator, 1)

        updated = orchestrator.select_option(1, state.payload.correct_index)

        assert updated.is_correct
        assert updated.passed
        assert orchestrator.is_passed(1)
        assert orchestrator.may_advance(1)
        assert orchestrator.wrong_attempts(1) == 0
        assert completed == [1]
        answered = [p for name, p in telemetry.events if name == "checkpoint_answered"]
        assert answered[0]["is_correct"] is True

    @pytest.mark.asyncio
    async def test_wrong_answer_counts_and_blocks(self, build):
        orchestrator = build(None)
        state = await ready(orchestrator, 1)
        wrong = (state.payload.correct_index + 1) % len(state.payload.options)

        updated = orchestrator.select_option(1, wrong)

        assert updated.is_correct is False
        assert updated.selected_index == wrong
        assert orchestrator.wrong_attempts(1) == 1
        assert not orchestrator.may_advance(1)

    @pytest.mark.asyncio
    async def test_answers_ignored_after_pass(self, build):
        orchestrator = build(None)
        state = await ready(orchestrator, 1)
        orchestrator.select_option(1, state.payload.correct_index)
        wrong = (state.payload.correct_index + 1) % len(state.payload.options)

        assert orchestrator.select_option(1, wrong) is None
        assert orchestrator.is_passed(1)
        assert orchestrator.wrong_attempts(1) == 0

    @pytest.mark.asyncio
    async def test_invalid_index_ignored(self, build):
        orchestrator = build(None)
        await ready(orchestrator, 1)
        assert orchestrator.select_option(1, 9) is None
        assert orchestrator.select_option(1, -1) is None
        assert orchestrator.wrong_attempts(1) == 0

    def test_select_before_ready_ignored(self, build):
        assert build(None).select_option(0, 0) is None

    @pytest.mark.asyncio
    async def test_gate_closed_until_passed(self, build):
        orchestrator = build(None)
        assert not orchestrator.may_advance(1)
        await orchestrator.ensure_checkpoint(1)
        assert not orchestrator.may_advance(1)


class TestRemediationWiring:
    @pytest.mark.asyncio
    async def test_two_misses_show_quick_review_once(self, build, telemetry):
        orchestrator = build(None)
        state = await ready(orchestrator, 1)
        wrong = (state.payload.correct_index + 1) % len(state.payload.options)

        orchestrator.select_option(1, wrong)
        assert not orchestrator.remediation.is_visible(1)
        orchestrator.select_option(1, wrong)
        assert orchestrator.remediation.is_visible(1)
        orchestrator.select_option(1, wrong)

        assert telemetry.count("quick_review_shown") == 1
        assert orchestrator.wrong_attempts(1) == 3

    @pytest.mark.asyncio
    async def test_quick_review_uses_section_shape(self, build):
        orchestrator = build(None)
        review = orchestrator.quick_review(1)
        assert review.options == ("3 + 3 + 3 + 3", "3 × 3")

    @pytest.mark.asyncio
    async def test_quick_review_answer_does_not_pass(self, build):
        orchestrator = build(None)
        state = await ready(orchestrator, 1)
        wrong = (state.payload.correct_index + 1) % len(state.payload.options)
        orchestrator.select_option(1, wrong)
        orchestrator.select_option(1, wrong)

        review = orchestrator.quick_review(1)
        result = orchestrator.answer_quick_review(1, review.correct_index)

        assert result.is_correct
        assert not orchestrator.remediation.is_visible(1)
        assert not orchestrator.is_passed(1)
        assert not orchestrator.may_advance(1)

    @pytest.mark.asyncio
    async def test_pass_clears_quick_review(self, build):
        orchestrator = build(None)
        state = await ready(orchestrator, 1)
        wrong = (state.payload.correct_index + 1) % len(state.payload.options)
        orchestrator.select_option(1, wrong)
        orchestrator.select_option(1, wrong)
        orchestrator.select_option(1, state.payload.correct_index)
        assert not orchestrator.remediation.is_visible(1)

    @pytest.mark.asyncio
    async def test_reset_clears_counters_and_remediation(self, build):
        orchestrator = build(None)
        state = await ready(orchestrator, 1)
        wrong = (state.payload.correct_index + 1) % len(state.payload.options)
        orchestrator.select_option(1, wrong)
        orchestrator.select_option(1, wrong)

        orchestrator.reset()

        assert orchestrator.wrong_attempts(1) == 0
        assert not orchestrator.remediation.was_shown(1)
        assert isinstance(orchestrator.state(1), CheckpointIdle)


class TestHints:
    @pytest.mark.asyncio
    async def test_hint_after_ready(self, build, telemetry):
        orchestrator = build(None)
        assert orchestrator.hint(1) is None
        await orchestrator.ensure_checkpoint(1)
        assert orchestrator.hint(1) == "A square has 4 equal sides. Add the same number 4 times."

        assert orchestrator.toggle_hint(1) is True
        assert orchestrator.is_hint_shown(1)
        assert orchestrator.toggle_hint(1) is False
        clicks = [p for name, p in telemetry.events if name == "checkpoint_hint_clicked"]
        assert [c["source"] for c in clicks] == ["deterministic", "deterministic"]

    @pytest.mark.asyncio
    async def test_define_hint(self, build):
        orchestrator = build(None)
        await orchestrator.ensure_checkpoint(0)
        assert orchestrator.hint(0) == "Perimeter means the distance around the outside of a shape."

    @pytest.mark.asyncio
    async def test_tutor_handoff_withholds_answer(self, build, telemetry):
        sent = []
        orchestrator = build(None, tutor_handoff=sent.append)
        state = await ready(orchestrator, 1)

        assert orchestrator.ask_for_hint(1)

        text = sent[0]
        assert state.payload.question in text
        assert "A. " in text and "C. " in text
        assert "do NOT tell me the answer letter" in text
        assert telemetry.events[-1] == (
            "checkpoint_hint_clicked",
            {"lesson_id": LESSON_ID, "section_index": 1, "intent": "compute", "source": "tutor"},
        )

    @pytest.mark.asyncio
    async def test_handoff_unavailable(self, build):
        orchestrator = build(None)
        await orchestrator.ensure_checkpoint(1)
        assert not orchestrator.ask_for_hint(1)
        assert not orchestrator.ask_to_explain(1)

    def test_ask_to_explain(self, build):
        sent = []
        orchestrator = build(None, tutor_handoff=sent.append)
        assert orchestrator.ask_to_explain(1)
        assert sent == ['I\'m reading about "Squares". Can you explain it in simple terms?']


class TestDisabled:
    @pytest.mark.asyncio
    async def test_disabled_never_generates(self, build, make_generator):
        generator = make_generator("unused")
        orchestrator = build(generator, enabled=False)
        state = await orchestrator.ensure_checkpoint(1)
        assert isinstance(state, CheckpointIdle)
        assert generator.calls == []
        assert orchestrator.may_advance(1)

    def test_out_of_range_section_may_advance(self, build):
        assert build(None).may_advance(10)


class TestTelemetryIsolation:
    @pytest.mark.asyncio
    async def test_broken_sink_does_not_affect_checkpoints(self, perimeter_sections, settings, retry_policy):
        class Broken:
            def track(self, event_name, payload):
                raise RuntimeError("collector down")

        orchestrator = CheckpointOrchestrator(
            LESSON_ID,
            perimeter_sections,
            None,
            telemetry=Broken(),
            retry_policy=retry_policy,
            settings=settings,
        )
        state = await ready(orchestrator, 1)
        assert orchestrator.select_option(1, state.payload.correct_index).passed
