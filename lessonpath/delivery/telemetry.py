"""
Telemetry sinks for checkpoint and remediation events.

Telemetry is fire-and-forget: a broken sink is logged and ignored so it can
never change checkpoint or navigation behavior.

Event Types:
    - checkpoint_generated: source ai|fallback|cache, fallback reason, intent
    - checkpoint_answered: selected index and correctness
    - checkpoint_hint_clicked: source deterministic|tutor
    - checkpoint_error: terminal generation failure
    - quick_review_shown: remediation surfaced after repeated misses
    - quick_review_answered: remediation answer correctness

File Structure (JsonlTelemetry):
    <telemetry_path>            # one JSON event per line
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from loguru import logger


class TelemetrySink(Protocol):
    def track(self, event_name: str, payload: dict[str, Any]) -> None:
        ...


class NullTelemetry:
    """Discards every event."""

    def track(self, event_name: str, payload: dict[str, Any]) -> None:
        return None


class LoggingTelemetry:
    """Logs each event as single-line JSON for easy grepping."""

    def track(self, event_name: str, payload: dict[str, Any]) -> None:
        logger.info(
            "telemetry={}",
            json.dumps({"event": event_name, **payload}, separators=(",", ":"), default=str),
        )


class JsonlTelemetry:
    """
    Appends events to a JSONL file.

    The file and its directory are created on the first event.
    """

    def __init__(self, path: Path):
        self.path = path

    def track(self, event_name: str, payload: dict[str, Any]) -> None:
        record = {
            "event": event_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str) + "\n")


class RecordingTelemetry:
    """Keeps events in memory (used by the CLI summary and in tests)."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def track(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((event_name, dict(payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def count(self, event_name: str) -> int:
        return sum(1 for name, _ in self.events if name == event_name)


def safe_track(sink: TelemetrySink | None, event_name: str, payload: dict[str, Any]) -> None:
    """Emit an event, swallowing (and logging) any sink failure."""
    if sink is None:
        return
    try:
        sink.track(event_name, payload)
    except Exception as e:
        logger.error(f"[telemetry] failed to emit {event_name}: {e}")
