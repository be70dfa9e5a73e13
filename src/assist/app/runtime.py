"""Application runtime wiring and operational surface."""

from __future__ import annotations

import time
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from assist.config import Settings
from assist.core.breaker import CircuitBreaker, CircuitBreakerStats
from assist.core.context import DEFAULT_SYSTEM_PROMPT, ContextWindowManager
from assist.core.orchestrator import SessionOrchestrator, Submission
from assist.core.pipeline import RetryPolicy, StreamingCompletionPipeline
from assist.upstream import CompletionClient, build_completion_client, build_completion_options

SWEEP_JOB_ID = "assist.session_sweep"


class AppRuntime:
    """Owns one breaker, pipeline and orchestrator for a provider endpoint."""

    def __init__(self, settings: Settings, *, client: CompletionClient | None = None) -> None:
        self.settings = settings
        self.started_at = time.monotonic()
        self.client = client if client is not None else build_completion_client(settings)
        self.breaker = CircuitBreaker(
            failure_threshold=settings.failure_threshold,
            success_threshold=settings.success_threshold,
            open_duration=settings.open_duration_seconds,
        )
        self.pipeline = StreamingCompletionPipeline(
            self.client,
            self.breaker,
            build_completion_options(settings),
            retry=RetryPolicy(
                max_retries=settings.max_retries,
                base_delay=settings.retry_base_delay_seconds,
                cap_delay=settings.retry_cap_delay_seconds,
            ),
        )
        self.context = ContextWindowManager(
            token_budget=settings.context_token_budget,
            system_prompt=settings.system_prompt or DEFAULT_SYSTEM_PROMPT,
        )
        self.orchestrator = SessionOrchestrator(self.pipeline, self.context)
        self.scheduler: AsyncIOScheduler | None = None
        logger.info(
            "runtime.init provider={} model={} max_retries={}",
            settings.provider,
            settings.model,
            settings.max_retries,
        )

    async def __aenter__(self) -> AppRuntime:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def start(self) -> None:
        """Start the idle-session sweep; requires a running event loop."""
        if self.scheduler is not None and self.scheduler.running:
            return
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.sweep_idle_sessions,
            "interval",
            minutes=self.settings.sweep_interval_minutes,
            id=SWEEP_JOB_ID,
            replace_existing=True,
        )
        scheduler.start()
        self.scheduler = scheduler
        logger.info("runtime.sweep.scheduled every={}min", self.settings.sweep_interval_minutes)

    def shutdown(self) -> None:
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("runtime.sweep.stopped")
        self.scheduler = None

    def submit(self, text: str, session_id: str | None = None) -> Submission:
        return self.orchestrator.submit(text, session_id)

    def sweep_idle_sessions(self) -> int:
        return self.orchestrator.clear_older_than(self.settings.max_session_age_minutes)

    def get_circuit_breaker_stats(self) -> CircuitBreakerStats:
        return self.breaker.stats()

    def reset_circuit_breaker(self) -> None:
        self.breaker.reset()

    def get_active_session_count(self) -> int:
        return self.orchestrator.get_active_session_count()

    def clear_older_than(self, max_age_minutes: float) -> int:
        return self.orchestrator.clear_older_than(max_age_minutes)

    def health(self) -> dict[str, Any]:
        stats = self.breaker.stats()
        return {
            "status": "ok",
            "uptime_seconds": round(time.monotonic() - self.started_at, 3),
            "provider": self.settings.provider,
            "model": self.settings.model,
            "active_sessions": self.get_active_session_count(),
            "circuit_breaker": {
                "state": stats.state.value,
                "consecutive_failures": stats.consecutive_failures,
                "consecutive_successes": stats.consecutive_successes,
                "last_failure_at": stats.last_failure_at,
            },
        }

    async def test_connection(self) -> dict[str, Any]:
        """Make a real provider call to check credentials and connectivity."""
        connected = await self.client.test_connection()
        logger.info("runtime.connection_test provider={} connected={}", self.settings.provider, connected)
        return {"status": "healthy" if connected else "unhealthy", "model": self.settings.model}

    def ready(self) -> dict[str, Any]:
        provider_ok = self.settings.provider_ready
        return {
            "status": "ready" if provider_ok else "not_ready",
            "checks": {"provider": provider_ok},
        }
