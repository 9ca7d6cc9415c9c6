"""
Per-section checkpoint state.

    idle -> loading -> ready(payload, intent, selected_index, is_correct)
                    -> error(message)

States are immutable; the orchestrator replaces the entry for a section
index rather than mutating it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from lessonpath.generation.payload import CheckpointIntent, CheckpointPayload, intent_for_section


class CheckpointStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class CheckpointSource(str, Enum):
    """Where a ready checkpoint came from."""

    AI = "ai"
    FALLBACK = "fallback"
    CACHE = "cache"


class FallbackReason(str, Enum):
    ASSISTANT_UNAVAILABLE = "assistant_unavailable"  # every remote attempt failed
    GENERATION_ERROR = "generation_error"            # response unparsable or invalid


@dataclass(frozen=True)
class CheckpointIdle:
    status: CheckpointStatus = CheckpointStatus.IDLE


@dataclass(frozen=True)
class CheckpointLoading:
    status: CheckpointStatus = CheckpointStatus.LOADING


@dataclass(frozen=True)
class CheckpointReady:
    payload: CheckpointPayload
    intent: CheckpointIntent
    source: CheckpointSource = CheckpointSource.AI
    reason: FallbackReason | None = None
    selected_index: int | None = None
    is_correct: bool | None = None
    status: CheckpointStatus = CheckpointStatus.READY

    @property
    def passed(self) -> bool:
        return self.is_correct is True


@dataclass(frozen=True)
class CheckpointError:
    message: str
    status: CheckpointStatus = CheckpointStatus.ERROR


CheckpointState = Union[CheckpointIdle, CheckpointLoading, CheckpointReady, CheckpointError]

__all__ = [
    "CheckpointIntent",
    "CheckpointPayload",
    "intent_for_section",
    "CheckpointStatus",
    "CheckpointSource",
    "FallbackReason",
    "CheckpointIdle",
    "CheckpointLoading",
    "CheckpointReady",
    "CheckpointError",
    "CheckpointState",
]
