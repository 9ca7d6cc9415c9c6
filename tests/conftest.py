"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import json
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lessonpath.checkpoint.retry import RetryPolicy
from lessonpath.core.config import Settings
from lessonpath.delivery.telemetry import RecordingTelemetry
from lessonpath.lesson.models import LessonSection


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeGenerator:
    """
    Scripted tutor service.

    Each call consumes the next scripted response; exceptions are raised.
    The last response repeats once the script runs out.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def generate(self, prompt, *, system_prompt=None, mode="learning"):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "mode": mode})
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return response


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def settings():
    """Settings with the documented defaults, independent of the environment."""
    return Settings(
        tutor_api_url="http://tutor.test",
        tutor_endpoint="/api/ai/tutor",
        checkpoint_max_attempts=3,
        checkpoint_backoff_ms=400,
        remediation_threshold=2,
        cache_path=None,
        telemetry_path=None,
    )


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def retry_policy(sleep):
    """Default retry policy that does not actually wait."""
    return RetryPolicy(max_attempts=3, base_delay_ms=400, sleep=sleep)


@pytest.fixture
def telemetry():
    return RecordingTelemetry()


@pytest.fixture
def perimeter_sections():
    """Three sections; their intents cycle define, compute, scenario."""
    return [
        LessonSection(
            id="section-0",
            title="What is perimeter?",
            content="Perimeter is the distance around the outside of a shape. Walk around the edge!",
        ),
        LessonSection(
            id="section-1",
            title="Squares",
            content="A square has each side 3 feet. Add all four sides to find the perimeter.",
        ),
        LessonSection(
            id="section-2",
            title="Rectangles",
            content="The door is 7 ft tall and 3 ft wide. Perimeter = 7 + 3 + 7 + 3 = 20 ft.",
        ),
    ]


@pytest.fixture
def valid_compute_response():
    """Tutor message wrapping a valid compute checkpoint in prose."""
    payload = {
        "question": "A square has sides of 3 feet. What is its perimeter?",
        "options": ["12 feet", "9 feet", "6 feet", "3 feet"],
        "correctIndex": 0,
        "explanation": "3 + 3 + 3 + 3 = 12 feet.",
    }
    return f"Here is your checkpoint:\n{json.dumps(payload)}\nGood luck!"


@pytest.fixture
def make_generator():
    return FakeGenerator
