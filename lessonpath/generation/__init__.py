"""
Checkpoint content generation.

Pipeline:
1. Tutor service generates a question from the section excerpt (prompts)
2. Response is parsed into a candidate payload (parsing)
3. Every candidate passes the same quality bar (validator)
4. If anything fails, a deterministic perimeter question is built (fallback)
5. Options are permuted with a seeded shuffle (seeded)
"""
from lessonpath.generation.fallback import FallbackCheckpoint, generate_fallback_checkpoint
from lessonpath.generation.parsing import coerce_payload, extract_json_object, parse_checkpoint_response
from lessonpath.generation.payload import CheckpointIntent, CheckpointPayload, intent_for_section
from lessonpath.generation.prompts import build_system_prompt, build_user_prompt, clamp_text
from lessonpath.generation.seeded import (
    Mulberry32,
    generator_seed,
    shuffle_seed,
    shuffle_with_correct_index,
)
from lessonpath.generation.shapes import ShapeDescriptor, extract_equation_total, extract_shape
from lessonpath.generation.validator import is_valid_checkpoint_payload, validation_issues

__all__ = [
    "CheckpointIntent",
    "CheckpointPayload",
    "intent_for_section",
    "FallbackCheckpoint",
    "generate_fallback_checkpoint",
    "extract_json_object",
    "coerce_payload",
    "parse_checkpoint_response",
    "build_system_prompt",
    "build_user_prompt",
    "clamp_text",
    "Mulberry32",
    "generator_seed",
    "shuffle_seed",
    "shuffle_with_correct_index",
    "ShapeDescriptor",
    "extract_shape",
    "extract_equation_total",
    "is_valid_checkpoint_payload",
    "validation_issues",
]
