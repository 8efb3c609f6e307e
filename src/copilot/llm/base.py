from __future__ import annotations

import abc
from typing import Any


class LLMClient(abc.ABC):
    """Abstract base class representing a language model client."""

    @abc.abstractmethod
    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        json_mode: bool = True,
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ) -> str:
        """Return the raw text of the model reply."""

    async def close(self) -> None:
        return None
