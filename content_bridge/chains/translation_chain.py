"""LangChain-backed translation client with retry and error classification."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable
from langchain_core.rate_limiters import InMemoryRateLimiter
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_incrementing

from content_bridge.chains.llm_factory import create_llm, create_rate_limiter, get_models_for_provider
from content_bridge.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ContentBridgeError,
    MalformedRequestError,
    ProviderError,
    RateLimitError,
    ValidationError,
)
from content_bridge.services.models import TranslatedResult, TranslationOptions
from content_bridge.utils.config import Settings, get_settings
from content_bridge.utils.helpers import clean_translated_text, language_label

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional translator specializing in accurate, culturally appropriate "
    "translations. Maintain the original tone and style while ensuring the translation is "
    "natural and fluent in the target language."
)

PRESERVE_FORMATTING_DIRECTIVE = (
    "IMPORTANT: Preserve all HTML tags, formatting, and structure exactly as they appear in "
    "the original text. Only translate the actual text content, not the HTML tags or attributes."
)

_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", SYSTEM_PROMPT),
        ("human", "{instruction}"),
    ]
)

LLMFactory = Callable[..., BaseChatModel]


def build_translation_prompt(
    text: str,
    source_lang: str,
    target_lang: str,
    context: Optional[str] = None,
    preserve_formatting: bool = True,
) -> str:
    """Build the user instruction for one text unit."""

    prompt = (
        f"Translate the following text from {language_label(source_lang)} "
        f"to {language_label(target_lang)}:\n\n{text}"
    )

    if context:
        prompt = f"Context: {context}\n\n{prompt}"

    if preserve_formatting:
        prompt += f"\n\n{PRESERVE_FORMATTING_DIRECTIVE}"

    return prompt


def _status_code_of(exc: BaseException) -> Optional[int]:
    """Extract an HTTP status from SDK (openai/anthropic) or httpx errors."""
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def classify_provider_error(exc: BaseException) -> ContentBridgeError:
    """Map a raw provider exception to the error taxonomy."""

    if isinstance(exc, ContentBridgeError):
        return exc

    status = _status_code_of(exc)
    details = {"status": status} if status is not None else None

    if status == 401:
        return AuthenticationError("Invalid translation provider API key", details=details)
    if status == 429:
        return RateLimitError("Translation provider rate limit exceeded", details=details)
    if status == 400:
        return MalformedRequestError("Invalid request to translation provider", details=details)
    return ProviderError(f"Translation service error: {exc}", details=details)


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
    LOGGER.warning(
        "Translation attempt %d failed: %s (retrying in %.2fs)",
        retry_state.attempt_number,
        exc,
        wait,
    )


class TranslationClient:
    """Translates single text units through the configured LLM provider."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_factory: LLMFactory = create_llm,
        rate_limiter: Optional[InMemoryRateLimiter] = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Configuration settings. Uses default if not provided.
            llm_factory: Callable building chat models; replaced in tests.
            rate_limiter: Shared limiter. Built from settings if not provided.
        """
        self._settings = settings or get_settings()
        self._llm_factory = llm_factory
        self._rate_limiter = rate_limiter if rate_limiter is not None else create_rate_limiter(self._settings)
        self._llms: Dict[str, BaseChatModel] = {}

    @property
    def provider(self) -> str:
        return self._settings.translation_provider

    @property
    def default_model(self) -> str:
        return self._settings.default_model

    def is_configured(self) -> bool:
        """Return whether provider credentials are present."""
        return self._settings.provider_configured

    def ensure_configured(self) -> None:
        if not self.is_configured():
            raise ConfigurationError(
                f"{self.provider} API key not configured",
                details={"provider": self.provider},
            )

    @property
    def available_models(self) -> List[str]:
        """Models a request may select; the configured default is always allowed."""
        models = get_models_for_provider(self.provider)
        if self.default_model not in models:
            models.append(self.default_model)
        return models

    def validate_options(self, options: Optional[TranslationOptions]) -> None:
        """Reject per-request options the provider client will not honour.

        Raises:
            ValidationError: Unknown model or a non-positive token limit.
        """
        if options is None:
            return
        if options.model and options.model not in self.available_models:
            raise ValidationError(
                f"Unsupported model: {options.model}",
                details={"allowed": self.available_models},
            )
        if options.max_output_tokens is not None and options.max_output_tokens < 1:
            raise ValidationError("maxTokens must be >= 1")

    def _get_llm(self, model: str) -> BaseChatModel:
        llm = self._llms.get(model)
        if llm is None:
            llm = self._llm_factory(
                provider=self.provider,
                model_name=model,
                api_key=self._settings.provider_api_key,
                max_tokens=self._settings.max_output_tokens,
                temperature=self._settings.temperature,
                timeout=self._settings.request_timeout_seconds,
                rate_limiter=self._rate_limiter,
            )
            self._llms[model] = llm
        return llm

    async def translate(
        self,
        text: str,
        target_lang: str,
        source_lang: str = "en",
        options: Optional[TranslationOptions] = None,
    ) -> TranslatedResult:
        """Translate one text unit.

        Makes at most ``settings.max_retries`` attempts, waiting
        ``attempt * retry_base_delay_seconds`` between them.

        Raises:
            ConfigurationError: Provider credentials are missing.
            ValidationError: The requested model is not offered by the provider.
            ProviderError: The provider failed on every attempt (or a subclass
                for 401/429/400 responses).
        """

        self.ensure_configured()
        self.validate_options(options)

        options = options or TranslationOptions()
        model = options.model or self.default_model

        LOGGER.info(
            "Starting translation: length=%d, %s -> %s, model=%s",
            len(text),
            source_lang,
            target_lang,
            model,
        )

        instruction = build_translation_prompt(
            text,
            source_lang,
            target_lang,
            context=options.context,
            preserve_formatting=options.preserve_formatting,
        )
        messages = _PROMPT.format_messages(instruction=instruction)
        llm: Runnable = self._get_llm(model)
        if options.max_output_tokens:
            llm = llm.bind(max_tokens=options.max_output_tokens)
        base_delay = self._settings.retry_base_delay_seconds

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_retries),
            wait=wait_incrementing(start=base_delay, increment=base_delay),
            before_sleep=_log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    message = await llm.ainvoke(messages)
                    raw_text = _message_text(message)
                    if not raw_text.strip():
                        raise ProviderError("No translation received from provider")
        except Exception as exc:
            LOGGER.error(
                "Translation failed: %s (length=%d, %s -> %s)",
                exc,
                len(text),
                source_lang,
                target_lang,
            )
            error = classify_provider_error(exc)
            if error is exc:
                raise
            raise error from exc

        usage = getattr(message, "usage_metadata", None)
        result = TranslatedResult(
            translated_text=clean_translated_text(raw_text),
            source_language=source_lang,
            target_language=target_lang,
            model=model,
            usage=dict(usage) if usage else None,
        )

        LOGGER.info(
            "Translation completed: source_length=%d, translated_length=%d, tokens=%s",
            len(text),
            len(result.translated_text),
            result.usage.get("total_tokens") if result.usage else None,
        )
        return result
