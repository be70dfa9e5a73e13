"""Provider selection from settings."""

from __future__ import annotations

from assist.config import Settings
from assist.errors import ApiKeyNotConfiguredError
from assist.upstream.base import CompletionClient, CompletionOptions
from assist.upstream.openai_compat import OpenAICompatClient
from assist.upstream.toy import ToyCompletionClient

API_KEY_NOT_CONFIGURED_ERROR = "API key not configured. Set ASSIST_API_KEY or OPENAI_API_KEY, or use ASSIST_PROVIDER=toy."


def build_completion_client(settings: Settings) -> CompletionClient:
    if settings.provider == "toy":
        return ToyCompletionClient(token_delay_ms=settings.toy_token_delay_ms)
    if not settings.api_key:
        raise ApiKeyNotConfiguredError(API_KEY_NOT_CONFIGURED_ERROR)
    return OpenAICompatClient(
        api_base=settings.api_base,
        api_key=settings.api_key,
        timeout_seconds=settings.request_timeout_seconds,
    )


def build_completion_options(settings: Settings) -> CompletionOptions:
    return CompletionOptions(
        model=settings.model,
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
    )
