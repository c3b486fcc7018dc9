"""HTTP client for the Gemini generateContent API."""

import logging
from typing import Any, Dict, Optional

import httpx

from city_dashboard.config import (
    GEMINI_API_KEY, GEMINI_BASE_URL,
    NARRATIVE_MAX_OUTPUT_TOKENS, NARRATIVE_TEMPERATURE
)
from city_dashboard.providers.base import ProviderClient
from city_dashboard.providers.errors import FormatError, SafetyBlocked

logger = logging.getLogger(__name__)

# Finish reasons that still carry usable text
COMPLETE_FINISH_REASONS = {"STOP", "MAX_TOKENS"}


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first_mapping(value: Any) -> Dict[str, Any]:
    """First element of a list if it is an object, else an empty dict."""
    if isinstance(value, list) and value:
        return _mapping(value[0])
    return {}


def extract_text(data: Dict[str, Any]) -> str:
    """Extract generated text from a generateContent response.

    Besides the current ``candidates[0].content.parts[0].text`` shape this
    accepts the older ``candidates[0].text``, ``candidates[0].parts[0].text``,
    ``text`` and ``choices[0].message.content`` shapes. Any other shape,
    including wrongly typed members, counts as having no text.

    Raises:
        SafetyBlocked: If the prompt or the candidate was blocked
        FormatError: If no text can be found
    """
    block_reason = _mapping(data.get("promptFeedback")).get("blockReason")
    if block_reason:
        raise SafetyBlocked(f"Content blocked by safety filters: {block_reason}")

    text = None
    candidates = data.get("candidates")
    if candidates:
        candidate = _first_mapping(candidates)

        finish_reason = candidate.get("finishReason")
        if finish_reason and finish_reason not in COMPLETE_FINISH_REASONS:
            logger.warning(f"Candidate finished with reason: {finish_reason}")
            if finish_reason == "SAFETY":
                raise SafetyBlocked("Response blocked by safety filters")

        parts = _mapping(candidate.get("content")).get("parts") or candidate.get("parts")
        text = _first_mapping(parts).get("text") or candidate.get("text")
    elif data.get("text"):
        text = data["text"]
    elif data.get("choices"):
        message = _mapping(_first_mapping(data["choices"]).get("message"))
        text = message.get("content")

    if not isinstance(text, str) or not text.strip():
        raise FormatError(
            f"No text found in response. Response keys: {', '.join(sorted(data)) or 'none'}"
        )

    return text


class GeminiClient(ProviderClient):
    """Async client for narrative generation."""

    name = "Gemini"

    def __init__(
        self,
        api_key: str = GEMINI_API_KEY,
        base_url: str = GEMINI_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
        temperature: float = NARRATIVE_TEMPERATURE,
        max_output_tokens: int = NARRATIVE_MAX_OUTPUT_TOKENS
    ):
        super().__init__(base_url, api_key, client=client)
        self.generation_config = {
            "temperature": temperature,
            "maxOutputTokens": max_output_tokens,
            "topP": 0.8,
            "topK": 40
        }

    async def generate(self, api_version: str, model: str, prompt: str) -> str:
        """Generate text with one API version and model.

        Args:
            api_version: API version path segment, e.g. ``v1beta``
            model: Model name, e.g. ``gemini-1.5-flash``
            prompt: Prompt text

        Returns:
            The generated text

        Raises:
            TransportError: If the request fails or returns non-2xx
            SafetyBlocked: If the content was blocked
            FormatError: If the response has no extractable text
        """
        logger.info(f"Generating narrative with {api_version}/{model}")
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": self.generation_config
        }
        data = await self._request(
            "POST",
            f"/{api_version}/models/{model}:generateContent",
            params={"key": self.api_key},
            json=body
        )
        return extract_text(data)
