"""Configuration management for Assist."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ASSIST_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Provider
    provider: Literal["openai", "toy"] = Field(default="toy", description="Completion provider")
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ASSIST_API_KEY", "OPENAI_API_KEY"),
        description="API key for the completion provider",
    )
    api_base: str = Field(default="https://api.openai.com/v1", description="OpenAI-compatible API base URL")
    model: str = Field(default="gpt-4-turbo-preview", description="Model name")
    max_tokens: int = Field(default=1000, ge=1, description="Maximum tokens for responses")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    toy_token_delay_ms: int = Field(default=20, ge=0, description="Delay between toy provider tokens")

    # Circuit breaker
    failure_threshold: int = Field(default=5, ge=1)
    success_threshold: int = Field(default=2, ge=1)
    open_duration_seconds: float = Field(default=60.0, ge=0)

    # Retry
    max_retries: int = Field(default=3, ge=1, description="Upstream attempts per request, including the first")
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_cap_delay_seconds: float = Field(default=10.0, ge=0)

    # Sessions
    context_token_budget: int = Field(default=4000, ge=1)
    system_prompt: str | None = Field(default=None, description="Override for the persona instruction")
    max_session_age_minutes: float = Field(default=60.0, gt=0)
    sweep_interval_minutes: float = Field(default=5.0, gt=0)

    # Logging
    log_level: str = Field(default="INFO")

    @property
    def provider_ready(self) -> bool:
        return self.provider == "toy" or bool(self.api_key)


def load_settings(**overrides: object) -> Settings:
    """Build settings from the environment, ``.env`` and explicit overrides."""
    return Settings(**overrides)  # type: ignore[arg-type]
