"""
lessonpath: step-by-step lesson player with gated comprehension checkpoints.

Components:
- lesson: phase/section navigation (LessonStepper) and lesson content parsing
- generation: seeded shuffling, shape extraction, payload validation and the
  deterministic fallback question generator
- checkpoint: per-section checkpoint orchestration, caching and remediation
- delivery: tutor service client and telemetry sinks
- cli: terminal lesson runner
"""

__version__ = "0.3.0"

from .checkpoint import CheckpointIntent, CheckpointOrchestrator, CheckpointPayload
from .lesson import LessonPhase, LessonSession, LessonStepper

__all__ = [
    "__version__",
    "CheckpointIntent",
    "CheckpointOrchestrator",
    "CheckpointPayload",
    "LessonPhase",
    "LessonSession",
    "LessonStepper",
]
