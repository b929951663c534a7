"""LLM provider abstraction."""

from flowengine.llm.litellm import LiteLLMProvider
from flowengine.llm.provider import LLMProvider, LLMResponse

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
]
