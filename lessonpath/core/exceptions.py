"""
Error taxonomy for checkpoint generation.

Only TransientRemoteFailure is ever raised across a module boundary (by the
tutor client). The orchestrator catches everything else and resolves it into
a fallback checkpoint or an error state.
"""

from __future__ import annotations


class LessonPathError(Exception):
    """Base class for lessonpath errors."""


class TransientRemoteFailure(LessonPathError):
    """Network error, timeout, non-2xx response or empty content from the tutor service."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidPayload(LessonPathError):
    """A generated checkpoint could not be parsed or failed validation."""

    def __init__(self, message: str, reasons: list[str] | None = None):
        super().__init__(message)
        self.reasons = reasons or []


class TerminalGenerationFailure(LessonPathError):
    """Neither remote generation nor the deterministic fallback produced a checkpoint."""
