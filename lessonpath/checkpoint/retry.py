"""
Retry policy for remote checkpoint generation.

Attempts run strictly one after another; between attempts the policy waits
base_delay_ms * attempt_number. The outcome is a GenerationResult rather
than an exception so the caller makes a single fallback decision.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class GenerationResult(Generic[T]):
    """Outcome of a retried call."""

    ok: bool
    value: T | None = None
    error: Exception | None = None
    attempts: int = 0


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 400
    sleep: SleepFn = asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return self.base_delay_ms * attempt / 1000.0

    async def run(self, call: Callable[[], Awaitable[T]]) -> GenerationResult[T]:
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                value = await call()
                return GenerationResult(ok=True, value=value, attempts=attempt)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Generation attempt {attempt}/{self.max_attempts} failed: {e}"
                )
                if attempt < self.max_attempts:
                    await self.sleep(self.delay_for(attempt))

        return GenerationResult(ok=False, error=last_error, attempts=self.max_attempts)
