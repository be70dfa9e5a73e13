"""Completion client boundary."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from assist.core.types import Turn


@dataclass(frozen=True)
class CompletionOptions:
    model: str
    max_tokens: int = 1000
    temperature: float = 0.7


@runtime_checkable
class CompletionClient(Protocol):
    """One completion request against the provider.

    Implementations raise ``UpstreamStatusError`` carrying the provider status
    code on failure.
    """

    async def create_completion(self, turns: Sequence[Turn], options: CompletionOptions) -> str: ...

    def stream_completion(self, turns: Sequence[Turn], options: CompletionOptions) -> AsyncIterator[str]: ...

    async def test_connection(self) -> bool:
        """Return whether the provider accepts the configured credentials."""
        ...
