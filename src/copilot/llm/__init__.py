from __future__ import annotations

from .anthropic_client import AnthropicClient
from .base import LLMClient
from .openai_client import CEREBRAS_BASE_URL, OpenAIClient
from .oracle import BrowsingContext, Oracle

__all__ = [
	"LLMClient",
	"OpenAIClient",
	"AnthropicClient",
	"CEREBRAS_BASE_URL",
	"Oracle",
	"BrowsingContext",
]
