"""
Unit tests for the deterministic fallback checkpoint generator.
"""
import pytest

from lessonpath.generation.fallback import (
    DEFINE_VARIANTS,
    DEFINITION_ANSWER,
    _select_distractors,
    generate_fallback_checkpoint,
)
from lessonpath.generation.payload import CheckpointIntent
from lessonpath.generation.validator import is_valid_checkpoint_payload

SQUARE_TEXT = "A square has each side 3 feet."
DOOR_TEXT = "The door is 7 ft tall and 3 ft wide."
NO_DIGITS_TEXT = "Perimeter is the distance around the outside of a shape."


class TestGroundedQuestions:
    def test_square_compute(self):
        """Each-side square gives the summed total and a walk-through explanation."""
        result = generate_fallback_checkpoint(SQUARE_TEXT, CheckpointIntent.COMPUTE, 12)
        assert result is not None
        assert result.intent == CheckpointIntent.COMPUTE
        assert not result.downgraded
        payload = result.payload
        assert payload.correct_index == 0
        assert payload.options[payload.correct_index] == "12 feet"
        assert payload.explanation == "3 + 3 + 3 + 3 = 12 feet."

    def test_square_distractors(self):
        result = generate_fallback_checkpoint(SQUARE_TEXT, CheckpointIntent.COMPUTE, 12)
        assert result.payload.options == ["12 feet", "3 feet", "9 feet", "14 feet"]

    def test_rectangle_compute(self):
        result = generate_fallback_checkpoint(DOOR_TEXT, CheckpointIntent.COMPUTE, 5)
        payload = result.payload
        assert payload.options[0] == "20 feet"
        assert payload.options[1:] == ["10 feet", "17 feet", "13 feet"]
        assert payload.explanation == "7 + 3 + 7 + 3 = 20 feet."

    def test_triangle_compute(self):
        result = generate_fallback_checkpoint("Perimeter = 3 + 4 + 5 = 12 cm", CheckpointIntent.COMPUTE, 1)
        assert result.payload.options == ["12 cm", "7 cm", "9 cm", "14 cm"]

    def test_scenario_uses_story_template(self):
        result = generate_fallback_checkpoint(SQUARE_TEXT, CheckpointIntent.SCENARIO, 3)
        assert result.intent == CheckpointIntent.SCENARIO
        question = result.payload.question.lower()
        assert any(word in question for word in ("ribbon", "fence", "string"))
        assert result.payload.options[0] == "12 feet"

    def test_equation_without_shape(self):
        text = "Perimeter = 2 + 3 + 4 + 5 + 6 = 20 feet"
        result = generate_fallback_checkpoint(text, CheckpointIntent.COMPUTE, 9)
        payload = result.payload
        assert result.intent == CheckpointIntent.COMPUTE
        assert payload.visual == "Perimeter = 2 + 3 + 4 + 5 + 6 = 20 feet"
        assert payload.options[0] == "20 feet"
        assert len(set(payload.options)) == 4


class TestDowngrade:
    def test_no_digits_downgrades_to_define(self):
        result = generate_fallback_checkpoint(NO_DIGITS_TEXT, CheckpointIntent.SCENARIO, 7)
        assert result.intent == CheckpointIntent.DEFINE
        assert result.downgraded
        assert result.payload.correct_index == 0
        assert result.payload.options[0] == DEFINITION_ANSWER

    def test_digits_without_shape_downgrade(self):
        result = generate_fallback_checkpoint("There are 5 apples and 3 pears.", CheckpointIntent.COMPUTE, 7)
        assert result.intent == CheckpointIntent.DEFINE
        assert result.downgraded

    @pytest.mark.parametrize(
        "text",
        [
            "A square garden: each side is 2.5 feet long.",
            "The rug is 3 ft long and 1.5 ft wide.",
            "Each side of the square is 6 and there are 4 in all.",
            "Perimeter = 3 + 3 + 3 + 3 = 12 yards.",
            "Perimeter = 2 + 5 + 9 + 1 = 17 yards.",
        ],
    )
    @pytest.mark.parametrize("intent", [CheckpointIntent.COMPUTE, CheckpointIntent.SCENARIO])
    def test_unrecognised_measurements_downgrade(self, text, intent):
        result = generate_fallback_checkpoint(text, intent, 7)
        assert result.intent == CheckpointIntent.DEFINE
        assert result.downgraded
        assert result.payload.visual is None
        assert result.payload.options[0] == DEFINITION_ANSWER

    def test_define_request_is_not_a_downgrade(self):
        result = generate_fallback_checkpoint(SQUARE_TEXT, CheckpointIntent.DEFINE, 4)
        assert result.intent == CheckpointIntent.DEFINE
        assert not result.downgraded
        assert result.payload.options[0] == DEFINITION_ANSWER

    def test_definition_comes_from_canned_variants(self):
        questions = {v["question"] for v in DEFINE_VARIANTS}
        for seed in range(20):
            result = generate_fallback_checkpoint(NO_DIGITS_TEXT, CheckpointIntent.DEFINE, seed)
            assert result.payload.question in questions

    @pytest.mark.parametrize("text", [None, "", "   \n"])
    def test_blank_text_returns_none(self, text):
        assert generate_fallback_checkpoint(text, CheckpointIntent.DEFINE, 1) is None


class TestDeterminism:
    @pytest.mark.parametrize("text", [SQUARE_TEXT, DOOR_TEXT, NO_DIGITS_TEXT])
    @pytest.mark.parametrize("intent", list(CheckpointIntent))
    def test_same_inputs_same_payload(self, text, intent):
        first = generate_fallback_checkpoint(text, intent, 70022)
        second = generate_fallback_checkpoint(text, intent, 70022)
        assert first == second

    @pytest.mark.parametrize("text", [SQUARE_TEXT, DOOR_TEXT, NO_DIGITS_TEXT, "Perimeter = 3 + 4 + 5 = 12"])
    @pytest.mark.parametrize("intent", list(CheckpointIntent))
    def test_output_passes_validation(self, text, intent):
        for seed in (0, 1, 2, 50, 10001):
            result = generate_fallback_checkpoint(text, intent, seed)
            assert is_valid_checkpoint_payload(result.payload, result.intent)


class TestDistractors:
    def test_excludes_total_and_non_positive(self):
        assert _select_distractors(4, [4, 0, -2, 2, 6, 8]) == [2, 6, 8]

    def test_pads_with_larger_values(self):
        assert _select_distractors(10, [10, 10]) == [14, 16, 18]

    def test_distinct(self):
        assert _select_distractors(12, [3, 3, 9, 9, 14]) == [3, 9, 14]
