"""Tests for the provider client: prompts, retries and error mapping."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage

from content_bridge.chains.translation_chain import (
    PRESERVE_FORMATTING_DIRECTIVE,
    TranslationClient,
    build_translation_prompt,
    classify_provider_error,
)
from content_bridge.exceptions import (
    AuthenticationError,
    ConfigurationError,
    MalformedRequestError,
    ProviderError,
    RateLimitError,
    ValidationError,
)
from content_bridge.services.models import TranslationOptions
from tests.fakes import make_settings


class FakeAPIError(Exception):
    """Mimics SDK errors carrying an HTTP status."""

    def __init__(self, status_code: int, message: str = "provider error") -> None:
        super().__init__(message)
        self.status_code = status_code


def _reply(text: str, **usage) -> AIMessage:
    return AIMessage(content=text, usage_metadata=usage or None)


def _client(*responses, **settings_overrides):
    """Build a client whose model answers with ``responses`` in order."""
    llm = MagicMock()
    llm.ainvoke = AsyncMock(side_effect=list(responses))
    llm.bind.return_value = llm
    factory = MagicMock(return_value=llm)
    client = TranslationClient(settings=make_settings(**settings_overrides), llm_factory=factory)
    return client, llm, factory


class TestBuildTranslationPrompt:
    def test_names_both_languages_and_includes_text(self):
        """Prompt names source and target languages and ends with the text."""
        prompt = build_translation_prompt("Hello", "en", "ms")
        assert prompt.startswith("Translate the following text from English (en) to Malay (ms):\n\nHello")

    def test_context_is_prefixed(self):
        """Context is placed before the instruction."""
        prompt = build_translation_prompt("Hello", "en", "ms", context="Tech blog")
        assert prompt.startswith("Context: Tech blog\n\nTranslate")

    def test_formatting_directive_is_optional(self):
        """The formatting directive can be switched off."""
        assert build_translation_prompt("x", "en", "ms").endswith(PRESERVE_FORMATTING_DIRECTIVE)
        assert PRESERVE_FORMATTING_DIRECTIVE not in build_translation_prompt(
            "x", "en", "ms", preserve_formatting=False
        )


class TestClassifyProviderError:
    @pytest.mark.parametrize(
        "status,expected,code,http_status",
        [
            (401, AuthenticationError, "INVALID_API_KEY", 401),
            (429, RateLimitError, "RATE_LIMIT_EXCEEDED", 429),
            (400, MalformedRequestError, "INVALID_REQUEST", 400),
            (503, ProviderError, "TRANSLATION_ERROR", 500),
        ],
    )
    def test_status_mapping(self, status, expected, code, http_status):
        """HTTP status of the SDK error selects the error class."""
        error = classify_provider_error(FakeAPIError(status))
        assert type(error) is expected
        assert error.code == code
        assert error.status_code == http_status

    def test_unknown_exception_becomes_provider_error(self):
        """Errors without a status fall back to ProviderError."""
        error = classify_provider_error(RuntimeError("socket closed"))
        assert type(error) is ProviderError
        assert "socket closed" in error.message

    def test_status_read_from_response(self):
        """Status is also read from an attached response object."""
        exc = Exception("boom")
        exc.response = MagicMock(status_code=429)
        assert isinstance(classify_provider_error(exc), RateLimitError)


class TestTranslate:
    @pytest.mark.asyncio
    async def test_returns_cleaned_text_model_and_usage(self):
        """Code fences are stripped and usage is reported."""
        client, llm, _ = _client(
            _reply("```html\n<p>Helo</p>\n```", input_tokens=12, output_tokens=4, total_tokens=16)
        )

        result = await client.translate("<p>Hello</p>", "ms", "en")

        assert result.translated_text == "<p>Helo</p>"
        assert result.source_language == "en"
        assert result.target_language == "ms"
        assert result.model == "gpt-4o-mini"
        assert result.usage["total_tokens"] == 16
        llm.ainvoke.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sends_system_and_user_messages(self):
        """System prompt and user prompt are sent as separate messages."""
        client, llm, _ = _client(_reply("Helo"))

        await client.translate("Hello", "ms", options=TranslationOptions(context="Greeting"))

        messages = llm.ainvoke.call_args.args[0]
        assert messages[0].type == "system"
        assert "professional translator" in messages[0].content
        assert messages[1].type == "human"
        assert messages[1].content.startswith("Context: Greeting")

    @pytest.mark.asyncio
    async def test_options_select_model_and_token_limit(self):
        """Per-request model and token limit reach the provider."""
        client, llm, factory = _client(_reply("Helo"))

        result = await client.translate(
            "Hello", "ms", options=TranslationOptions(model="gpt-4o", max_output_tokens=256)
        )

        assert result.model == "gpt-4o"
        kwargs = factory.call_args.kwargs
        assert kwargs["model_name"] == "gpt-4o"
        assert kwargs["max_tokens"] == 4000
        llm.bind.assert_called_once_with(max_tokens=256)
        assert kwargs["api_key"] == "test-key"

    @pytest.mark.asyncio
    async def test_model_instances_are_reused(self):
        """One model instance serves repeated calls."""
        client, llm, factory = _client(_reply("a"), _reply("b"))

        await client.translate("x", "ms")
        await client.translate("y", "ms")

        assert factory.call_count == 1
        assert llm.ainvoke.await_count == 2
        llm.bind.assert_not_called()

    @pytest.mark.asyncio
    async def test_token_limits_share_one_model_instance(self):
        """Varying maxTokens binds the limit per call instead of building new models."""
        client, llm, factory = _client(*(_reply(f"r{n}") for n in range(50)))

        for n in range(1, 51):
            await client.translate("x", "ms", options=TranslationOptions(max_output_tokens=n))

        assert factory.call_count == 1
        assert len(client._llms) == 1
        assert llm.bind.call_args_list[-1].kwargs == {"max_tokens": 50}

    @pytest.mark.asyncio
    async def test_unknown_model_is_rejected(self):
        """Models outside the provider list fail validation before any model is built."""
        client, llm, factory = _client(_reply("never"))

        with pytest.raises(ValidationError) as excinfo:
            await client.translate("x", "ms", options=TranslationOptions(model="gpt-made-up"))

        assert excinfo.value.status_code == 400
        assert "gpt-4o-mini" in excinfo.value.details["allowed"]
        factory.assert_not_called()
        llm.ainvoke.assert_not_awaited()

    def test_configured_default_model_is_always_allowed(self):
        """A custom default model stays selectable even if it is not listed."""
        client, _, _ = _client(default_model="gpt-4o-2024-08-06")

        client.validate_options(TranslationOptions(model="gpt-4o-2024-08-06"))

        assert "gpt-4o-2024-08-06" in client.available_models
        with pytest.raises(ValidationError):
            client.validate_options(TranslationOptions(max_output_tokens=0))

    @pytest.mark.asyncio
    async def test_list_content_blocks_are_joined(self):
        """Content blocks from the provider are joined into one string."""
        client, _, _ = _client(AIMessage(content=[{"type": "text", "text": "Helo "}, {"type": "text", "text": "dunia"}]))

        result = await client.translate("Hello world", "ms")

        assert result.translated_text == "Helo dunia"

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self):
        """Failures before the last attempt are retried."""
        client, llm, _ = _client(RuntimeError("timeout"), FakeAPIError(503), _reply("Helo"))

        result = await client.translate("Hello", "ms")

        assert result.translated_text == "Helo"
        assert llm.ainvoke.await_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        """The last error is raised once attempts run out."""
        client, llm, _ = _client(*(RuntimeError(f"boom {i}") for i in range(5)))

        with pytest.raises(ProviderError) as excinfo:
            await client.translate("Hello", "ms")

        assert llm.ainvoke.await_count == 3
        assert "boom 2" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_final_error_is_classified(self):
        """The error raised after retries keeps its classification and cause."""
        client, llm, _ = _client(FakeAPIError(401), FakeAPIError(401), FakeAPIError(401))

        with pytest.raises(AuthenticationError) as excinfo:
            await client.translate("Hello", "ms")

        assert excinfo.value.code == "INVALID_API_KEY"
        assert isinstance(excinfo.value.__cause__, FakeAPIError)

    @pytest.mark.asyncio
    async def test_empty_answer_counts_as_failure(self):
        """Blank answers are retried like errors."""
        client, llm, _ = _client(_reply("   "), _reply(""), _reply("\n"))

        with pytest.raises(ProviderError, match="No translation received"):
            await client.translate("Hello", "ms")

        assert llm.ainvoke.await_count == 3

    @pytest.mark.asyncio
    async def test_attempt_count_follows_settings(self):
        """max_retries bounds the number of attempts."""
        client, llm, _ = _client(RuntimeError("a"), RuntimeError("b"), _reply("ok"), max_retries=2)

        with pytest.raises(ProviderError):
            await client.translate("Hello", "ms")

        assert llm.ainvoke.await_count == 2

    @pytest.mark.asyncio
    async def test_backoff_grows_linearly(self, caplog):
        """Retry waits grow by the base delay on each attempt."""
        client, _, _ = _client(
            RuntimeError("a"), RuntimeError("b"), RuntimeError("c"), retry_base_delay_seconds=0.05
        )

        with caplog.at_level(logging.WARNING, logger="content_bridge.chains.translation_chain"):
            with pytest.raises(ProviderError):
                await client.translate("Hello", "ms")

        retry_logs = [r.getMessage() for r in caplog.records if "retrying in" in r.getMessage()]
        assert len(retry_logs) == 2
        assert "retrying in 0.05s" in retry_logs[0]
        assert "retrying in 0.10s" in retry_logs[1]


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_missing_key_fails_before_calling_provider(self):
        """Without an API key nothing is sent to the provider."""
        client, llm, factory = _client(_reply("never"), openai_api_key=None)

        assert client.is_configured() is False
        with pytest.raises(ConfigurationError) as excinfo:
            await client.translate("Hello", "ms")

        assert excinfo.value.code == "PROVIDER_NOT_CONFIGURED"
        factory.assert_not_called()
        llm.ainvoke.assert_not_awaited()

    def test_anthropic_uses_its_own_key(self):
        """The anthropic provider reads its own API key."""
        client = TranslationClient(
            settings=make_settings(
                translation_provider="anthropic",
                openai_api_key=None,
                anthropic_api_key="sk-ant",
            ),
            llm_factory=MagicMock(),
        )
        assert client.provider == "anthropic"
        assert client.is_configured() is True
