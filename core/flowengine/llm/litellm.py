"""LiteLLM-backed provider: one interface over OpenAI, Anthropic, Ollama and friends."""

import logging
from typing import Any

import litellm

from flowengine.config import get_api_key, get_llm_model
from flowengine.llm.provider import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    LLM provider that routes calls through ``litellm.acompletion``.

    Example:
        provider = LiteLLMProvider(model="gpt-4o-mini")
        response = await provider.acomplete([{"role": "user", "content": "Hi"}])
    """

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        api_base: str | None = None,
        **extra_kwargs: Any,
    ):
        """
        Initialize the provider.

        Args:
            model: Default model, e.g. "gpt-4o-mini" or "anthropic/claude-3-5-haiku-latest".
                Falls back to the configured model.
            api_key: API key. Falls back to the env var named in the configuration file,
                then to litellm's own provider env vars.
            api_base: Custom endpoint (Ollama, proxies)
            extra_kwargs: Passed through to every ``litellm.acompletion`` call
        """
        self.model = model or get_llm_model()
        self.api_key = api_key or get_api_key()
        self.api_base = api_base
        self.extra_kwargs = extra_kwargs

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        full_messages = list(messages)
        if system:
            full_messages.insert(0, {"role": "system", "content": system})

        kwargs: dict[str, Any] = {
            "model": model or self.model,
            "messages": full_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            **self.extra_kwargs,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        logger.debug(f"LLM request: model={kwargs['model']} messages={len(full_messages)}")
        response = await litellm.acompletion(**kwargs)

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            model=getattr(response, "model", None) or kwargs["model"],
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            stop_reason=choice.finish_reason or "",
            raw_response=response,
        )
