"""
Sweetlease - Gemini AI Client
Thin async wrapper over the Gemini generateContent REST endpoint.

Every failure (missing key, transport error, timeout, non-2xx, empty or
blocked response) surfaces as ModelError.
"""

import logging
from typing import Any, Optional, Protocol

import httpx

from app.core.config import get_settings
from app.services.lease.errors import ModelError

logger = logging.getLogger(__name__)


class GenerativeModel(Protocol):
    """Anything that turns a prompt (and optional response schema) into text."""

    async def generate(self, contents: str, response_schema: Optional[dict] = None) -> str:
        ...


class GeminiClient:
    """
    Gemini REST client.
    Structured output is requested with responseMimeType=application/json
    plus a responseSchema.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.api_base = (api_base or settings.gemini_api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.ai_timeout_seconds
        self._transport = transport

    @property
    def is_available(self) -> bool:
        """Check if Gemini is configured."""
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    async def generate(self, contents: str, response_schema: Optional[dict] = None) -> str:
        """
        Send a single-turn prompt and return the model's text.

        Args:
            contents: Prompt text
            response_schema: Optional output schema; when given the model is
                asked for JSON only and the returned text is that JSON

        Raises:
            ModelError: on any transport, auth or response failure
        """
        if not self.is_available:
            raise ModelError("Gemini API key is not configured")

        payload = self._build_payload(contents, response_schema)
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            logger.warning("Gemini request timed out after %ss", self.timeout)
            raise ModelError(f"Gemini request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.warning("Gemini transport error: %s", e)
            raise ModelError(f"Gemini transport error: {e}") from e

        if response.status_code != 200:
            logger.warning("Gemini API error %s: %s", response.status_code, response.text[:500])
            raise ModelError(
                f"Gemini API error: {response.status_code}",
                status_code=response.status_code,
            )

        return self._response_text(response)

    def _build_payload(self, contents: str, response_schema: Optional[dict]) -> dict[str, Any]:
        generation_config: dict[str, Any] = {"temperature": 0.1 if response_schema else 0.3}
        if response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = response_schema

        return {
            "contents": [{"role": "user", "parts": [{"text": contents}]}],
            "generationConfig": generation_config,
        }

    @staticmethod
    def _response_text(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError as e:
            raise ModelError("Gemini returned a non-JSON response") from e
        if not isinstance(data, dict):
            raise ModelError(f"Gemini returned an unexpected {type(data).__name__} body")

        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise ModelError(f"Gemini returned no answer ({reason})")

        candidate = candidates[0] if isinstance(candidates, list) else None
        if not isinstance(candidate, dict):
            raise ModelError("Gemini returned a malformed candidate")
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not text.strip():
            finish = candidate.get("finishReason", "unknown")
            raise ModelError(f"Gemini returned an empty answer (finishReason={finish})")
        return text


# Singleton instance
_gemini_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
    """Get or create the Gemini client instance."""
    global _gemini_client
    if _gemini_client is None:
        _gemini_client = GeminiClient()
    return _gemini_client
