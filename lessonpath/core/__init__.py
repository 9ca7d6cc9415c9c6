"""
Core infrastructure: settings, logging setup and the error taxonomy.
"""

from .config import Settings, get_settings
from .exceptions import (
    InvalidPayload,
    LessonPathError,
    TerminalGenerationFailure,
    TransientRemoteFailure,
)
from .logging import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "LessonPathError",
    "TransientRemoteFailure",
    "InvalidPayload",
    "TerminalGenerationFailure",
]
