"""Offline provider used for local runs without credentials."""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator, Sequence

from assist.core.types import Role, Turn
from assist.upstream.base import CompletionOptions

EMPTY_REPLY = "I did not receive a question. Could you tell me a bit more about what you need?"


class ToyCompletionClient:
    """Echoes the latest user turn back, word by word."""

    def __init__(self, *, token_delay_ms: int = 0) -> None:
        self._token_delay = max(0, token_delay_ms) / 1000.0

    async def create_completion(self, turns: Sequence[Turn], options: CompletionOptions) -> str:
        return self._answer(turns)

    async def stream_completion(self, turns: Sequence[Turn], options: CompletionOptions) -> AsyncIterator[str]:
        for token in tokenize_for_stream(self._answer(turns)):
            yield token
            if self._token_delay > 0:
                await asyncio.sleep(self._token_delay)

    async def test_connection(self) -> bool:
        return True

    @staticmethod
    def _answer(turns: Sequence[Turn]) -> str:
        question = next((turn.text for turn in reversed(turns) if turn.role is Role.USER), "").strip()
        if not question:
            return EMPTY_REPLY
        history = sum(1 for turn in turns if turn.role is not Role.SYSTEM) - 1
        return f"You said: {question} (context turns: {history})"


def tokenize_for_stream(text: str) -> list[str]:
    if not text:
        return []
    tokens = re.findall(r"\S+\s*", text)
    return tokens if tokens else [text]
