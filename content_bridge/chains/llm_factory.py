"""Factory for creating LLM instances based on provider."""

from __future__ import annotations

import logging
from typing import Literal, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.rate_limiters import InMemoryRateLimiter

from content_bridge.utils.config import Settings

LOGGER = logging.getLogger(__name__)

Provider = Literal["openai", "anthropic"]

OPENAI_MODELS = [
    "gpt-4o-mini",
    "gpt-4o",
    "gpt-4.1-mini",
]

ANTHROPIC_MODELS = [
    "claude-3-5-haiku-latest",
    "claude-sonnet-4-5",
]


def get_models_for_provider(provider: Provider) -> list[str]:
    """Return available models for the given provider."""
    if provider == "anthropic":
        return ANTHROPIC_MODELS.copy()
    return OPENAI_MODELS.copy()


def create_rate_limiter(settings: Settings) -> Optional[InMemoryRateLimiter]:
    """Create the process-wide rate limiter, if one is configured.

    The limiter is shared by every LLM instance, so all jobs draw from the
    same request budget.

    Returns:
        Configured InMemoryRateLimiter, or ``None`` when
        ``rate_limit_requests_per_second`` is 0.
    """
    if settings.rate_limit_requests_per_second <= 0:
        return None
    return InMemoryRateLimiter(
        requests_per_second=settings.rate_limit_requests_per_second,
        check_every_n_seconds=settings.rate_limit_check_interval,
        max_bucket_size=settings.rate_limit_max_bucket_size,
    )


def create_llm(
    provider: Provider,
    model_name: str,
    api_key: str,
    max_tokens: int = 4000,
    temperature: float = 0.2,
    timeout: float = 120.0,
    rate_limiter: Optional[InMemoryRateLimiter] = None,
) -> BaseChatModel:
    """Create an LLM instance based on the provider.

    SDK-level retries are disabled; the translation client owns retrying.

    Args:
        provider: The LLM provider ("openai" or "anthropic").
        model_name: The model identifier.
        api_key: Provider API key.
        max_tokens: Maximum tokens for the response.
        temperature: Sampling temperature.
        timeout: Per-request timeout in seconds.
        rate_limiter: Optional shared rate limiter.

    Returns:
        Configured LangChain chat model instance.

    Raises:
        ValueError: If the provider is not supported.
    """

    if provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        LOGGER.debug("Creating ChatAnthropic with model=%s, max_tokens=%d", model_name, max_tokens)
        return ChatAnthropic(
            model=model_name,
            max_tokens=max_tokens,
            temperature=temperature,
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
            rate_limiter=rate_limiter,
        )

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        LOGGER.debug("Creating ChatOpenAI with model=%s, max_tokens=%d", model_name, max_tokens)
        return ChatOpenAI(
            model=model_name,
            max_tokens=max_tokens,
            temperature=temperature,
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
            rate_limiter=rate_limiter,
        )

    raise ValueError(f"Unsupported provider: {provider}")
