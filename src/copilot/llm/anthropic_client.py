from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import LLMError
from .base import LLMClient

logger = logging.getLogger(__name__)


class AnthropicClient(LLMClient):
    """Anthropic Messages API client."""

    def __init__(self, api_key: str, model: str = "claude-3-5-sonnet-20240620") -> None:
        self._api_key = api_key
        self._model = model
        self._client = httpx.AsyncClient(
            base_url="https://api.anthropic.com/v1",
            timeout=httpx.Timeout(30.0, read=60.0),
            headers={
                "x-api-key": api_key,
                "anthropic-version": "2023-06-01",
            },
        )

    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        json_mode: bool = True,
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ) -> str:
        if json_mode:
            system = f"{system}\nRespond with a single JSON object and nothing else."
        payload = {
            "model": self._model,
            "system": system,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        try:
            response = await self._client.post("/messages", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Anthropic completion failed: %s", exc)
            raise LLMError(f"Anthropic request failed: {exc}") from exc

        data = response.json()
        parts = [block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"]
        return "".join(parts)

    async def close(self) -> None:
        await self._client.aclose()
