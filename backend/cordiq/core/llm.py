"""LLM client for template generation.

Routes completions through LiteLLM so any OpenRouter model can sit in the
fallback chain. Each model gets its own circuit breaker; a provider that keeps
failing is skipped quickly instead of costing a timeout per request.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

from litellm import acompletion

from cordiq.core.circuit_breaker import CircuitBreakerOpen, get_circuit_breaker
from cordiq.core.config import settings
from cordiq.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024


@dataclass
class LLMResponse:
    """Text returned by one completion call."""

    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


class LLMClient:
    """Async completion client bound to one OpenRouter account."""

    def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
        """Initialize LLM client.

        Args:
            api_key: OpenRouter key; defaults to OPENROUTER_API_KEY.
            base_url: API base; defaults to OPENROUTER_BASE_URL.
        """
        self._api_key = api_key or settings.OPENROUTER_API_KEY.get_secret_value()
        self._base_url = base_url or settings.OPENROUTER_BASE_URL
        self._headers = {"HTTP-Referer": settings.APP_URL, "X-Title": "Cordiq"}

    async def generate_response(
        self,
        model: str,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = 0.8,
    ) -> LLMResponse:
        """Generate a completion from ``model``.

        Args:
            model: LiteLLM model string, e.g. ``openrouter/openai/gpt-4-turbo``.
            messages: List of message dicts with 'role' and 'content'.
            system_prompt: Optional system prompt prepended to the messages.
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.

        Returns:
            The generated text and token usage.

        Raises:
            CircuitBreakerOpen: If this model's breaker is open.
            ExternalServiceError: If the provider call failed.
        """
        payload: list[dict[str, Any]] = []
        if system_prompt:
            payload.append({"role": "system", "content": system_prompt})
        payload.extend(messages)

        logger.debug(
            "Calling LLM via LiteLLM",
            extra={"model": model, "message_count": len(messages)},
        )
        start = time.time()
        try:
            response = await get_circuit_breaker(f"llm:{model}").call_async(
                acompletion,
                model=model,
                messages=payload,
                max_tokens=max_tokens,
                temperature=temperature,
                api_key=self._api_key,
                api_base=self._base_url,
                extra_headers=self._headers,
            )
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.warning("LLM call to %s failed: %s", model, e)
            raise ExternalServiceError("openrouter", f"LLM call to {model} failed: {e}") from e
        latency_ms = int((time.time() - start) * 1000)

        text = str(response.choices[0].message.content or "")
        usage = getattr(response, "usage", None)
        logger.debug(
            "LLM response received",
            extra={"model": model, "response_length": len(text), "latency_ms": latency_ms},
        )
        return LLMResponse(
            text=text,
            model=model,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
