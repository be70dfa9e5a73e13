from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field

import pytest

from assist.core.breaker import CircuitBreaker
from assist.core.pipeline import RetryPolicy, StreamingCompletionPipeline
from assist.core.types import Turn
from assist.upstream.base import CompletionOptions

# One entry per upstream call: fragments for success, an exception for an
# immediate failure, or (fragments, exception) for a mid-stream failure.
Script = list[str] | Exception | tuple[list[str], Exception]


@dataclass
class ScriptedClient:
    scripts: list[Script]
    default: list[str] = field(default_factory=lambda: ["ok"])
    calls: list[list[Turn]] = field(default_factory=list)
    connected: bool = True

    def _next(self, turns: Sequence[Turn]) -> Script:
        self.calls.append(list(turns))
        if self.scripts:
            return self.scripts.pop(0)
        return list(self.default)

    async def create_completion(self, turns: Sequence[Turn], options: CompletionOptions) -> str:
        script = self._next(turns)
        if isinstance(script, Exception):
            raise script
        if isinstance(script, tuple):
            raise script[1]
        return "".join(script)

    async def stream_completion(self, turns: Sequence[Turn], options: CompletionOptions) -> AsyncIterator[str]:
        script = self._next(turns)
        if isinstance(script, Exception):
            raise script
        if isinstance(script, tuple):
            fragments, error = script
            for fragment in fragments:
                yield fragment
            raise error
        for fragment in script:
            yield fragment

    async def test_connection(self) -> bool:
        return self.connected


@dataclass
class FakeClock:
    now: float = 1_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class RecordingSleep:
    delays: list[float] = field(default_factory=list)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_pipeline(clock: FakeClock, sleeps: RecordingSleep) -> Callable[..., StreamingCompletionPipeline]:
    def _make(
        scripts: list[Script] | None = None,
        *,
        max_retries: int = 3,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        open_duration: float = 60.0,
    ) -> StreamingCompletionPipeline:
        client = ScriptedClient(list(scripts or []))
        breaker = CircuitBreaker(failure_threshold, success_threshold, open_duration, clock=clock)
        return StreamingCompletionPipeline(
            client,
            breaker,
            CompletionOptions(model="test-model"),
            retry=RetryPolicy(max_retries=max_retries),
            sleep=sleeps,
        )

    return _make
