from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import LLMError
from .base import LLMClient

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
CEREBRAS_BASE_URL = "https://api.cerebras.ai/v1"


class OpenAIClient(LLMClient):
    """Minimal Chat Completions client for OpenAI and OpenAI-compatible endpoints."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = OPENAI_BASE_URL,
        provider: str = "OpenAI",
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._provider = provider
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(30.0, read=60.0),
        )

    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        json_mode: bool = True,
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ) -> str:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "system", "content": system}, *messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            response = await self._client.post("/chat/completions", json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("%s completion failed: %s", self._provider, exc)
            raise LLMError(f"{self._provider} request failed: {exc}") from exc

        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            return ""
        content = choices[0].get("message", {}).get("content")
        if isinstance(content, list) and content:
            return content[0].get("text", "")
        if isinstance(content, str):
            return content
        return ""

    async def close(self) -> None:
        await self._client.aclose()
