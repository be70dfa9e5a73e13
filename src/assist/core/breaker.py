"""Circuit breaker guarding calls to the completion provider."""

from __future__ import annotations

import inspect
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, Literal, TypeVar

from loguru import logger

from assist.errors import FastFailError

T = TypeVar("T")

OutcomeKind = Literal["ok", "rejected", "failed"]


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerStats:
    state: CircuitState
    consecutive_failures: int
    consecutive_successes: int
    last_failure_at: float | None


@dataclass(frozen=True)
class BreakerOutcome(Generic[T]):
    """Result of one guarded execution.

    ``rejected`` means the operation was never invoked; ``failed`` carries the
    operation's own exception.
    """

    kind: OutcomeKind
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.kind == "ok"

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class CircuitBreaker:
    """Three-state breaker with lazy half-open probing.

    Counter and state updates are serialized by one lock; the guarded
    operation runs outside it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        open_duration: float = 60.0,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.success_threshold = max(1, success_threshold)
        self.open_duration = max(0.0, open_duration)
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._last_failure_at: float | None = None
        logger.info(
            "breaker.init failure_threshold={} success_threshold={} open_duration={}s",
            self.failure_threshold,
            self.success_threshold,
            self.open_duration,
        )

    @property
    def state(self) -> CircuitState:
        return self._state

    async def execute(self, operation: Callable[[], Awaitable[T] | T]) -> BreakerOutcome[T]:
        rejection = self._admit()
        if rejection is not None:
            return BreakerOutcome(kind="rejected", error=rejection)

        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            # asyncio.CancelledError is a BaseException and bypasses counting.
            self._on_failure()
            return BreakerOutcome(kind="failed", error=exc)

        self._on_success()
        return BreakerOutcome(kind="ok", value=result)

    async def call(self, operation: Callable[[], Awaitable[T] | T]) -> T:
        outcome = await self.execute(operation)
        return outcome.unwrap()

    def stats(self) -> CircuitBreakerStats:
        with self._lock:
            return CircuitBreakerStats(
                state=self._state,
                consecutive_failures=self._failures,
                consecutive_successes=self._successes,
                last_failure_at=self._last_failure_at,
            )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._successes = 0
            self._last_failure_at = None
        logger.info("breaker.reset")

    def _admit(self) -> FastFailError | None:
        with self._lock:
            if self._state is not CircuitState.OPEN:
                return None
            if self._last_failure_at is not None and self._clock() - self._last_failure_at >= self.open_duration:
                self._state = CircuitState.HALF_OPEN
                self._successes = 0
                logger.info("breaker.half_open failures={}", self._failures)
                return None
            failures = self._failures
        logger.warning("breaker.reject failures={}", failures)
        return FastFailError(failures)

    def _on_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.OPEN:
                # A call admitted before the breaker opened; the open period stands.
                return
            self._failures = 0
            if self._state is CircuitState.CLOSED:
                return
            self._successes += 1
            if self._successes < self.success_threshold:
                return
            self._state = CircuitState.CLOSED
            self._successes = 0
        logger.info("breaker.closed success_threshold={}", self.success_threshold)

    def _on_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._successes = 0
            self._last_failure_at = self._clock()
            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
            elif self._state is CircuitState.CLOSED and self._failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
            else:
                return
            failures = self._failures
        logger.error("breaker.open failures={}", failures)
