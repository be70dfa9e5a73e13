"""Streaming completion pipeline with breaker protection and bounded retry."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from loguru import logger

from assist.core.breaker import CircuitBreaker
from assist.core.types import Fragment, Turn
from assist.errors import (
    AssistError,
    AuthError,
    CompletionError,
    RateLimitError,
    RetriesExhaustedError,
    UnexpectedUpstreamError,
    UpstreamError,
    UpstreamStatusError,
    UpstreamUnavailableError,
)
from assist.upstream.base import CompletionClient, CompletionOptions

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[object]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: 1s, 2s, 4s, ... capped at ``cap_delay``.

    ``max_retries`` counts every upstream attempt of one request, including
    the first.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    cap_delay: float = 10.0

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** (attempt - 1), self.cap_delay)


def classify_upstream_error(exc: BaseException) -> UpstreamError:
    if isinstance(exc, UpstreamError):
        return exc
    if not isinstance(exc, UpstreamStatusError):
        return UnexpectedUpstreamError(f"{type(exc).__name__}: {exc!s}")

    status = exc.status_code
    if status == 401:
        return AuthError(exc.message or "AI service authentication failed", status)
    if status == 429:
        return RateLimitError(exc.message or "AI service rate limit exceeded. Please try again later.", status)
    if status is None or 500 <= status < 600:
        return UpstreamUnavailableError(exc.message or "AI service unavailable", status)
    return UnexpectedUpstreamError(f"AI service error ({status}): {exc.message}", status)


class StreamingCompletionPipeline:
    """Runs completion requests through the breaker with retry and backoff."""

    def __init__(
        self,
        client: CompletionClient,
        breaker: CircuitBreaker,
        options: CompletionOptions,
        *,
        retry: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._breaker = breaker
        self._options = options
        self._retry = retry or RetryPolicy()
        self._sleep = sleep

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def retry(self) -> RetryPolicy:
        return self._retry

    def stream(self, prompt: Sequence[Turn], *, request_id: str | None = None) -> FragmentStream:
        turns = list(prompt)

        async def produce(emit: Callable[[Fragment], None]) -> None:
            async def attempt_once(attempt: int) -> int:
                chunks = 0
                async for text in self._client.stream_completion(turns, self._options):
                    emit(Fragment(text=text, attempt=attempt))
                    chunks += 1
                return chunks

            attempt, chunks = await self._run_with_retry(attempt_once, request_id=request_id, mode="stream")
            logger.info("pipeline.stream.finish request={} attempt={} chunks={}", request_id, attempt, chunks)
            emit(Fragment.final(attempt))

        logger.info("pipeline.stream.start request={} turns={}", request_id, len(turns))
        return FragmentStream(produce)

    async def complete(self, prompt: Sequence[Turn], *, request_id: str | None = None) -> str:
        turns = list(prompt)

        async def attempt_once(_attempt: int) -> str:
            return await self._client.create_completion(turns, self._options)

        _, content = await self._run_with_retry(attempt_once, request_id=request_id, mode="complete")
        logger.info("pipeline.complete.finish request={} chars={}", request_id, len(content))
        return content

    async def _run_with_retry(
        self,
        operation: Callable[[int], Awaitable[T]],
        *,
        request_id: str | None,
        mode: str,
    ) -> tuple[int, T]:
        max_attempts = max(1, self._retry.max_retries)
        attempt = 0
        while True:
            attempt += 1
            outcome = await self._breaker.execute(lambda: self._classified(operation, attempt))
            if outcome.ok:
                return attempt, outcome.value  # type: ignore[return-value]

            error = outcome.error
            if error is None:
                raise UnexpectedUpstreamError(f"breaker reported {outcome.kind} without an error")
            if not isinstance(error, UpstreamError):
                # Fast-fail rejection, or a completion error raised by the client itself.
                raise _with_request(error, request_id, attempt)

            logger.warning(
                "pipeline.{}.attempt_failed request={} attempt={}/{} error={}",
                mode,
                request_id,
                attempt,
                max_attempts,
                error.message,
            )
            if not error.retryable:
                raise _with_request(error, request_id, attempt)
            if attempt >= max_attempts:
                exhausted = RetriesExhaustedError(error, attempt)
                exhausted.__cause__ = error
                raise _with_request(exhausted, request_id, attempt)

            delay = self._retry.delay_for(attempt)
            logger.info("pipeline.retry request={} next_attempt={} delay={}s", request_id, attempt + 1, delay)
            await self._sleep(delay)

    @staticmethod
    async def _classified(operation: Callable[[int], Awaitable[T]], attempt: int) -> T:
        try:
            return await operation(attempt)
        except CompletionError:
            raise
        except Exception as exc:
            raise classify_upstream_error(exc) from exc


def _with_request(error: Exception, request_id: str | None, attempt: int) -> Exception:
    if isinstance(error, AssistError):
        error.with_context(request_id=request_id, attempt=attempt)
    return error


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


class FragmentStream:
    """Lazy fragment channel fed by a producer task.

    The producer starts on first iteration and pushes into an unbounded queue
    without waiting for the consumer. The channel ends after the final
    fragment, or raises the producer's error in its place. ``aclose`` cancels
    the producer, which closes the upstream call.
    """

    def __init__(self, produce: Callable[[Callable[[Fragment], None]], Awaitable[None]]) -> None:
        self._produce = produce
        self._queue: asyncio.Queue[Fragment | _Failure] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._finished = False

    def __aiter__(self) -> AsyncIterator[Fragment]:
        return self

    async def __anext__(self) -> Fragment:
        if self._finished:
            raise StopAsyncIteration
        if self._task is None:
            self._task = asyncio.create_task(self._run())

        item = await self._queue.get()
        if isinstance(item, _Failure):
            self._finished = True
            raise item.error
        if item.is_final:
            self._finished = True
        return item

    async def aclose(self) -> None:
        self._finished = True
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("pipeline.stream.cancelled")

    async def __aenter__(self) -> FragmentStream:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def _run(self) -> None:
        try:
            await self._produce(self._queue.put_nowait)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._queue.put_nowait(_Failure(exc))
