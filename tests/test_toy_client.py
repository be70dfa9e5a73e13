from __future__ import annotations

import pytest

from assist.config import Settings
from assist.core.types import Role, Turn
from assist.errors import ApiKeyNotConfiguredError
from assist.upstream import (
    CompletionClient,
    OpenAICompatClient,
    ToyCompletionClient,
    build_completion_client,
    build_completion_options,
)
from assist.upstream.base import CompletionOptions
from assist.upstream.toy import EMPTY_REPLY, tokenize_for_stream

OPTIONS = CompletionOptions(model="toy")


def _history() -> list[Turn]:
    return [
        Turn.create(Role.SYSTEM, "sys", "s1"),
        Turn.create(Role.USER, "first question", "s1"),
        Turn.create(Role.ASSISTANT, "first answer", "s1"),
        Turn.create(Role.USER, "What is a cap rate?", "s1"),
    ]


@pytest.mark.asyncio
async def test_toy_stream_echoes_latest_question() -> None:
    client = ToyCompletionClient()

    chunks = [chunk async for chunk in client.stream_completion(_history(), OPTIONS)]

    assert "".join(chunks) == "You said: What is a cap rate? (context turns: 2)"
    assert chunks[0] == "You "


@pytest.mark.asyncio
async def test_toy_complete_matches_stream() -> None:
    client = ToyCompletionClient()
    streamed = "".join([chunk async for chunk in client.stream_completion(_history(), OPTIONS)])

    assert await client.create_completion(_history(), OPTIONS) == streamed


@pytest.mark.asyncio
async def test_toy_without_question() -> None:
    client = ToyCompletionClient()

    assert await client.create_completion([Turn.create(Role.SYSTEM, "sys", "s1")], OPTIONS) == EMPTY_REPLY


def test_tokenize_for_stream_keeps_whitespace() -> None:
    assert tokenize_for_stream("a  b\nc") == ["a  ", "b\n", "c"]
    assert tokenize_for_stream("") == []
    assert tokenize_for_stream("   ") == ["   "]


def test_factory_builds_toy_client() -> None:
    client = build_completion_client(Settings(provider="toy", _env_file=None))

    assert isinstance(client, ToyCompletionClient)
    assert isinstance(client, CompletionClient)


def test_factory_requires_api_key_for_openai(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ASSIST_API_KEY", raising=False)

    with pytest.raises(ApiKeyNotConfiguredError):
        build_completion_client(Settings(provider="openai", _env_file=None))


def test_factory_builds_openai_client() -> None:
    settings = Settings(provider="openai", api_key="sk-test", model="gpt-x", max_tokens=12, _env_file=None)

    assert isinstance(build_completion_client(settings), OpenAICompatClient)
    assert build_completion_options(settings) == CompletionOptions(model="gpt-x", max_tokens=12, temperature=0.7)


@pytest.mark.asyncio
async def test_toy_connection_is_always_available() -> None:
    assert await ToyCompletionClient().test_connection() is True
