"""Fakes shared by the test modules."""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, List, Optional

from content_bridge.exceptions import ConfigurationError, ProviderError, ValidationError
from content_bridge.services.models import SourceItem, TranslatedResult, TranslationOptions
from content_bridge.utils.config import Settings


def make_settings(**overrides) -> Settings:
    """Settings with a configured provider and no waiting between chunks or retries."""
    defaults = dict(
        openai_api_key="test-key",
        chunk_delay_seconds=0.0,
        retry_base_delay_seconds=0.0,
        max_concurrency=3,
    )
    defaults.update(overrides)
    return Settings(**defaults)


FAKE_MODELS = ("gpt-4o-mini", "gpt-4o")


class FakeTranslationClient:
    """Stand-in for TranslationClient that records calls and concurrency."""

    def __init__(
        self,
        configured: bool = True,
        fail_when: Optional[Callable[[str], bool]] = None,
        delay: float = 0.0,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.configured = configured
        self.fail_when = fail_when or (lambda text: False)
        self.delay = delay
        self.gate = gate
        self.calls: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self.timeline: List[tuple] = []

    def is_configured(self) -> bool:
        return self.configured

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("openai API key not configured")

    def validate_options(self, options: Optional[TranslationOptions]) -> None:
        if options is not None and options.model and options.model not in FAKE_MODELS:
            raise ValidationError(f"Unsupported model: {options.model}")

    async def translate(
        self,
        text: str,
        target_lang: str,
        source_lang: str = "en",
        options: Optional[TranslationOptions] = None,
    ) -> TranslatedResult:
        self.ensure_configured()
        self.calls.append(text)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        self.timeline.append(("start", text))
        try:
            if self.gate is not None:
                while not self.gate.is_set():
                    await asyncio.sleep(0.01)
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if self.fail_when(text):
                raise ProviderError(f"Translation service error: cannot translate {text[:20]!r}")
            return TranslatedResult(
                translated_text=f"[{target_lang}] {text}",
                source_language=source_lang,
                target_language=target_lang,
                model=(options.model if options and options.model else "gpt-4o-mini"),
            )
        finally:
            self.in_flight -= 1
            self.timeline.append(("end", text))


class FakeConnection:
    """Observer connection collecting every JSON message it is sent."""

    def __init__(self, fail: bool = False, block: Optional[asyncio.Event] = None) -> None:
        self.fail = fail
        self.block = block
        self.messages: List[dict] = []

    async def send_json(self, data) -> None:
        if self.block is not None:
            await self.block.wait()
        if self.fail:
            raise RuntimeError("connection closed")
        self.messages.append(data)

    def types(self) -> List[str]:
        return [m["type"] for m in self.messages]


def make_posts(count: int, excerpt: bool = False) -> List[SourceItem]:
    return [
        SourceItem(
            id=f"post-{index}",
            title=f"Title {index}",
            content=f"<p>Body {index}</p>",
            excerpt=f"Excerpt {index}" if excerpt else None,
        )
        for index in range(1, count + 1)
    ]


async def drain(rounds: int = 5) -> None:
    """Give background writer tasks a chance to run."""
    for _ in range(rounds):
        await asyncio.sleep(0.01)


