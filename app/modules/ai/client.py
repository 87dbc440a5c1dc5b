import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.core.config import get_settings
from app.core.errors import UpstreamError


logger = logging.getLogger("app.ai")
settings = get_settings()


@dataclass(frozen=True)
class Generation:
    text: str
    tokens_used: int


class TextGenerationClient(Protocol):
    async def generate(self, prompt: str) -> Generation: ...

    def estimate_cost(self, tokens_used: int) -> float: ...


class GeminiClient:
    """Single-attempt client for the Gemini ``generateContent`` endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = settings.gemini_model,
        base_url: str = settings.gemini_base_url,
        timeout: float = settings.gemini_timeout_seconds,
        cost_per_million_tokens: float = settings.ai_cost_per_million_tokens,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cost_per_million_tokens = cost_per_million_tokens
        self._transport = transport

    async def generate(self, prompt: str) -> Generation:
        url = f"{self.base_url}/{self.model}:generateContent"
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.7, "maxOutputTokens": 2048},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Gemini transport error: {exc!r}") from exc

        if response.status_code >= 400:
            raise UpstreamError(f"Gemini API error: {response.status_code} - {response.text[:500]}")

        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UpstreamError("No usable response from Gemini API") from exc

        tokens_used = int((data.get("usageMetadata") or {}).get("totalTokenCount") or 0)
        return Generation(text=text, tokens_used=tokens_used)

    def estimate_cost(self, tokens_used: int) -> float:
        return tokens_used / 1_000_000 * self.cost_per_million_tokens


def get_text_client() -> TextGenerationClient:
    if not settings.gemini_api_key:
        raise UpstreamError("GEMINI_API_KEY is not configured")
    return GeminiClient(settings.gemini_api_key)
