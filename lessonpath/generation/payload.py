"""
Checkpoint question payload and intent.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CheckpointIntent(str, Enum):
    """Pedagogical flavor of a checkpoint question."""

    DEFINE = "define"      # What is perimeter?
    COMPUTE = "compute"    # Add the sides
    SCENARIO = "scenario"  # Fence, ribbon, string


_INTENT_CYCLE = (CheckpointIntent.DEFINE, CheckpointIntent.COMPUTE, CheckpointIntent.SCENARIO)


def intent_for_section(section_index: int) -> CheckpointIntent:
    """Intents rotate define -> compute -> scenario across sections."""
    return _INTENT_CYCLE[section_index % len(_INTENT_CYCLE)]


class CheckpointPayload(BaseModel):
    """A single multiple-choice checkpoint question."""

    model_config = ConfigDict(populate_by_name=True)

    visual: str | None = None
    question: str
    options: list[str] = Field(default_factory=list)
    correct_index: int = Field(alias="correctIndex")
    explanation: str

    @property
    def correct_option(self) -> str | None:
        if 0 <= self.correct_index < len(self.options):
            return self.options[self.correct_index]
        return None

    def to_dict(self) -> dict:
        """Wire/cache representation (camelCase, no empty visual)."""
        return self.model_dump(by_alias=True, exclude_none=True)
