"""
Delivery: tutor service client and telemetry sinks.
"""

from .telemetry import (
    JsonlTelemetry,
    LoggingTelemetry,
    NullTelemetry,
    RecordingTelemetry,
    TelemetrySink,
    safe_track,
)
from .tutor_client import TutorClient

__all__ = [
    "TutorClient",
    "TelemetrySink",
    "NullTelemetry",
    "LoggingTelemetry",
    "JsonlTelemetry",
    "RecordingTelemetry",
    "safe_track",
]
