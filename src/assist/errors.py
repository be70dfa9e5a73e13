"""Application-level exception types for Assist."""

from __future__ import annotations

from typing import Any


class AssistError(Exception):
    """Base exception for Assist."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = {}

    def with_context(self, **values: Any) -> AssistError:
        """Attach request context without overwriting keys set closer to the failure."""
        for key, value in values.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        rendered = " ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({rendered})"


class ConfigurationError(AssistError):
    """Base exception for configuration and startup validation errors."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when an API key is required but missing."""


class UpstreamStatusError(AssistError):
    """Raw failure reported by a completion client.

    ``status_code`` is ``None`` when the request failed before the provider
    answered (connect error, timeout).
    """

    def __init__(self, status_code: int | None, message: str = "") -> None:
        super().__init__(message or f"upstream status {status_code}")
        self.status_code = status_code


class CompletionError(AssistError):
    """Base exception for failures of one completion request."""


class FastFailError(CompletionError):
    """Raised when the circuit breaker is open and rejects the call."""

    def __init__(self, failure_count: int = 0) -> None:
        message = "Service temporarily unavailable due to repeated failures"
        if failure_count:
            message = f"{message} ({failure_count} failures detected)"
        super().__init__(message)
        self.failure_count = failure_count


class UpstreamError(CompletionError):
    """Classified provider failure."""

    retryable = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(UpstreamError):
    """Provider rejected the credentials; retrying cannot succeed."""

    retryable = False


class RateLimitError(UpstreamError):
    """Provider rate limit exceeded."""


class UpstreamUnavailableError(UpstreamError):
    """Provider is unreachable or answered with a server error."""


class UnexpectedUpstreamError(UpstreamError):
    """Any other provider failure."""


class RetriesExhaustedError(CompletionError):
    """Raised when every attempt of a request failed."""

    def __init__(self, last_error: UpstreamError, attempts: int) -> None:
        super().__init__(f"completion failed after {attempts} attempts: {last_error.message}")
        self.last_error = last_error
        self.attempts = attempts


class ChatError(AssistError):
    """Base exception for session handling errors."""


class SessionNotFoundError(ChatError):
    """Raised when a session id is unknown."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionBusyError(ChatError):
    """Raised when a session already has a completion in flight."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session is awaiting a completion: {session_id}")
        self.session_id = session_id


class InvalidMessageError(ChatError):
    """Raised when an inbound message is empty or malformed."""
