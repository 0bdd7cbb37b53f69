"""Gemini generateContent client over HTTPX."""

import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

from ..core.errors import InferenceRequestError, ResponseShapeError
from ..core.models import ChatMessage


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"


@dataclass
class GeminiConfig:
    """Inference endpoint settings.

    Attributes:
        base_url: API root, without trailing slash
        model: Model name used in the generateContent path
        timeout: Per-request timeout in seconds
        default_api_key: Key pre-filled into new sessions (users may replace it)
    """

    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    timeout: float = 30.0
    default_api_key: str = ""

    @classmethod
    def from_env(cls) -> "GeminiConfig":
        return cls(
            base_url=os.environ.get("GEMINI_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            model=os.environ.get("GEMINI_MODEL", DEFAULT_MODEL),
            timeout=float(os.environ.get("GEMINI_TIMEOUT", "30")),
            default_api_key=os.environ.get("GEMINI_API_KEY", ""),
        )


def extract_text(data: Any) -> str:
    """Pull the generated text out of a generateContent response body.

    Raises:
        ResponseShapeError: The body has no text at candidates[0].content.parts[0].text
    """
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise ResponseShapeError("Response has no generated text") from e
    if not isinstance(text, str):
        raise ResponseShapeError("Generated text is not a string")
    return text


def to_contents(history: tuple[ChatMessage, ...] | list[ChatMessage]) -> list[dict]:
    """Map coach messages to alternating user/model turns."""
    return [
        {"role": "user" if msg.sender == "user" else "model", "parts": [{"text": msg.text}]}
        for msg in history
    ]


@dataclass
class GeminiClient:
    """HTTPX-backed client for the generateContent endpoint.

    The API key is passed per call; it only ever leaves the process as the
    ``key`` query parameter of this endpoint.
    """

    config: GeminiConfig
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, config: GeminiConfig | None = None) -> "GeminiClient":
        """Create a client with a managed httpx session."""
        config = config or GeminiConfig.from_env()
        return cls(config=config, http_client=httpx.AsyncClient(timeout=config.timeout))

    @property
    def url(self) -> str:
        return f"{self.config.base_url}/models/{self.config.model}:generateContent"

    async def _post(self, api_key: str, body: dict[str, Any]) -> str:
        try:
            response = await self.http_client.post(
                self.url,
                params={"key": api_key},
                json=body,
                timeout=self.config.timeout,
            )
        except httpx.HTTPError as e:
            logger.error("Inference request failed: %s", type(e).__name__)
            raise InferenceRequestError(f"Inference request failed: {type(e).__name__}") from e

        if not response.is_success:
            logger.error("Inference API error: %d", response.status_code)
            raise InferenceRequestError(
                f"API Error: {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ResponseShapeError("Response body is not JSON") from e
        return extract_text(data)

    async def generate(self, api_key: str, prompt: str) -> str:
        """Single-turn generation: one user prompt, returns the generated text."""
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        return await self._post(api_key, body)

    async def chat(
        self,
        api_key: str,
        history: tuple[ChatMessage, ...] | list[ChatMessage],
        message: str,
        system_instruction: str,
    ) -> str:
        """Multi-turn generation with a system instruction."""
        contents = to_contents(history)
        contents.append({"role": "user", "parts": [{"text": message}]})
        body = {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": system_instruction}]},
        }
        return await self._post(api_key, body)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
