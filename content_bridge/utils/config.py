"""Application configuration utilities."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv


LOGGER = logging.getLogger(__name__)

_DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


@dataclass(slots=True)
class Settings:
    """Container for runtime configuration values."""

    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    translation_provider: str = "openai"
    default_model: str = "gpt-4o-mini"
    max_concurrency: int = 3
    chunk_delay_seconds: float = 0.5
    max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    max_output_tokens: int = 4000
    temperature: float = 0.2
    request_timeout_seconds: float = 120.0
    rate_limit_requests_per_second: float = 0.0
    rate_limit_check_interval: float = 0.1
    rate_limit_max_bucket_size: int = 10
    estimated_seconds_per_item: int = 10
    database_url: str = "sqlite+aiosqlite:///./content_bridge.db"
    cors_allowed_origins: List[str] = field(default_factory=list)
    log_level: str = "INFO"

    @property
    def provider_api_key(self) -> Optional[str]:
        """API key of the configured translation provider."""
        if self.translation_provider == "anthropic":
            return self.anthropic_api_key
        return self.openai_api_key

    @property
    def provider_configured(self) -> bool:
        return bool(self.provider_api_key)


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        LOGGER.warning("Invalid %s=%s; falling back to %s.", name, raw, default)
        return default


def _float_env(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return max(minimum, float(raw))
    except ValueError:
        LOGGER.warning("Invalid %s=%s; falling back to %s.", name, raw, default)
        return default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment and from `.env` if available.

    Millisecond variables (``TRANSLATION_CHUNK_DELAY_MS``,
    ``TRANSLATION_RETRY_DELAY_MS``) are converted to seconds.

    Returns:
        Loaded :class:`Settings` instance.
    """

    load_dotenv()

    provider = (os.getenv("TRANSLATION_PROVIDER") or "openai").strip().lower()
    if provider not in ("openai", "anthropic"):
        LOGGER.warning("Unsupported TRANSLATION_PROVIDER=%s; falling back to openai.", provider)
        provider = "openai"

    cors_origins = [
        origin.strip()
        for origin in os.getenv("CORS_ALLOWED_ORIGINS", _DEFAULT_CORS_ORIGINS).split(",")
        if origin.strip()
    ]

    settings = Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
        translation_provider=provider,
        default_model=os.getenv("TRANSLATION_MODEL") or "gpt-4o-mini",
        max_concurrency=_int_env("TRANSLATION_MAX_CONCURRENCY", 3, minimum=1),
        chunk_delay_seconds=_int_env("TRANSLATION_CHUNK_DELAY_MS", 500) / 1000,
        max_retries=_int_env("TRANSLATION_MAX_RETRIES", 3, minimum=1),
        retry_base_delay_seconds=_int_env("TRANSLATION_RETRY_DELAY_MS", 1000) / 1000,
        max_output_tokens=_int_env("TRANSLATION_MAX_TOKENS", 4000, minimum=1),
        request_timeout_seconds=_float_env("TRANSLATION_TIMEOUT_SECONDS", 120.0, minimum=1.0),
        rate_limit_requests_per_second=_float_env("RATE_LIMIT_REQUESTS_PER_SECOND", 0.0),
        estimated_seconds_per_item=_int_env("TRANSLATION_ESTIMATED_SECONDS_PER_ITEM", 10, minimum=1),
        database_url=os.getenv("DATABASE_URL") or "sqlite+aiosqlite:///./content_bridge.db",
        cors_allowed_origins=cors_origins,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )

    if not settings.provider_configured:
        LOGGER.warning(
            "No API key set for provider %s. Translation jobs will be rejected.",
            provider,
        )

    return settings
