"""
Generator provider abstraction.

The default provider calls Gemini's ``generateContent`` endpoint and expects
a JSON document back. Tests inject their own provider through the
``get_provider`` dependency.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from pathquest.config import get_settings
from pathquest.errors import GenerationFailed, QuotaExceeded

logger = structlog.get_logger()

QUOTA_MESSAGE = "AI quota used up for now. Please try again in a few minutes."

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


def is_quota_error(detail: str) -> bool:
    return "429" in detail or "RESOURCE_EXHAUSTED" in detail or "quota" in detail.lower()


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence (```json ... ```) if present."""
    return _FENCE_RE.sub("", text).strip()


def parse_json_payload(text: str) -> dict[str, Any]:
    """Parse the model's text output into a JSON object."""
    try:
        payload = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as exc:
        raise GenerationFailed("Generator returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise GenerationFailed("Generator returned a non-object JSON document")
    return payload


class GenerationProvider(ABC):
    """Abstract base class for structured content generators."""

    @abstractmethod
    async def generate(self, prompt: str, system_instructions: str) -> dict[str, Any]:
        """Return the generated JSON document.

        Raises ``QuotaExceeded`` when the upstream is rate limited and
        ``GenerationFailed`` for any other failure.
        """
        ...


class GeminiProvider(GenerationProvider):
    """Generate JSON documents with the Gemini REST API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def build_request(self, prompt: str, system_instructions: str) -> dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": f"{system_instructions}\n\n{prompt}"}],
                }
            ],
            "generationConfig": {
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 8192,
                "responseMimeType": "application/json",
            },
        }

    async def generate(self, prompt: str, system_instructions: str) -> dict[str, Any]:
        if not self.api_key:
            raise GenerationFailed("GEMINI_API_KEY not configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    url,
                    params={"key": self.api_key},
                    json=self.build_request(prompt, system_instructions),
                )
        except httpx.HTTPError as exc:
            logger.warning("gemini_request_failed", model=self.model, error=str(exc))
            raise GenerationFailed(f"Gemini request failed: {exc}") from exc

        if response.status_code != 200:
            detail = response.text
            if response.status_code == 429 or is_quota_error(detail):
                logger.warning("gemini_quota_exhausted", model=self.model, status=response.status_code)
                raise QuotaExceeded(QUOTA_MESSAGE)
            logger.error("gemini_error", model=self.model, status=response.status_code)
            raise GenerationFailed(f"Gemini API error: {detail[:500]}")

        try:
            text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise GenerationFailed("No response from Gemini API") from exc

        if not text:
            raise GenerationFailed("No response from Gemini API")

        return parse_json_payload(text)


def get_provider() -> GenerationProvider:
    """Build the configured provider (FastAPI dependency)."""
    settings = get_settings()
    return GeminiProvider(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.generation_timeout_seconds,
    )
