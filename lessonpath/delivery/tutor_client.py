"""
Tutor service client.

Sends a prompt (plus optional system prompt) to the tutor endpoint and
returns the generated text. Every failure surfaces as
TransientRemoteFailure; retrying is the caller's decision.

Wire format:
    POST {base_url}{endpoint}
    -> {"prompt": str, "systemPrompt": str | null, "mode": str, "knowledge": str | null}
    <- {"message": str} or {"error": str}
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from lessonpath.core.config import Settings
from lessonpath.core.exceptions import TransientRemoteFailure

UNAVAILABLE_MESSAGE = "Assistant unavailable. Please try again in a moment."


def _error_message(response: httpx.Response) -> str:
    """Prefer the server's error text over a generic status message."""
    fallback = f"Assistant unavailable ({response.status_code})"
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str) and error.strip():
            return error.strip()
    return fallback


class TutorClient:
    """Async HTTP client for the tutor service."""

    def __init__(
        self,
        base_url: str,
        endpoint: str = "/api/ai/tutor",
        api_key: str | None = None,
        timeout: float | None = None,
        max_prompt_chars: int = 1200,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: Base URL of the tutor service
            endpoint: Generation path on that service
            api_key: Optional bearer token
            timeout: Transport timeout in seconds (None disables it)
            max_prompt_chars: Prompts are truncated to this length
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.endpoint = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        self.max_prompt_chars = max_prompt_chars

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> TutorClient:
        return cls(
            base_url=settings.tutor_api_url,
            endpoint=settings.tutor_endpoint,
            api_key=settings.tutor_api_key,
            timeout=settings.tutor_timeout_seconds,
            max_prompt_chars=settings.max_prompt_chars,
        )

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.endpoint}"

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> TutorClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        mode: str = "learning",
        knowledge: str | None = None,
    ) -> str:
        """
        Generate text for a prompt.

        Raises:
            ValueError: The prompt is blank
            TransientRemoteFailure: Network error, non-2xx status or empty message
        """
        trimmed = (prompt or "").strip()
        if not trimmed:
            raise ValueError("Prompt must be a non-empty string.")

        body = {
            "prompt": trimmed[: self.max_prompt_chars],
            "systemPrompt": system_prompt,
            "knowledge": knowledge,
            "mode": mode,
        }

        try:
            response = await self.client.post(self.url, json=body)
        except httpx.RequestError as e:
            logger.warning(f"Tutor request error: {e}")
            raise TransientRemoteFailure(f"Tutor request failed: {e}") from e

        if not response.is_success:
            message = _error_message(response)
            logger.warning(f"Tutor service returned {response.status_code}: {message}")
            raise TransientRemoteFailure(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise TransientRemoteFailure(UNAVAILABLE_MESSAGE, status_code=response.status_code) from e

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, str) or not message.strip():
            raise TransientRemoteFailure(UNAVAILABLE_MESSAGE, status_code=response.status_code)

        return message

    async def health_check(self) -> bool:
        """True if the tutor service answers its health endpoint."""
        try:
            response = await self.client.get(f"{self.base_url}/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False
