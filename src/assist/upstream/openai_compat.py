"""OpenAI-compatible chat completions client over httpx."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
from loguru import logger

from assist.core.context import estimate_tokens
from assist.core.types import Turn
from assist.errors import UpstreamStatusError
from assist.upstream.base import CompletionOptions

DONE_MARKER = "[DONE]"


class OpenAICompatClient:
    """Talks to ``{api_base}/chat/completions``.

    A shared ``httpx.AsyncClient`` may be injected; otherwise one is opened per
    request.
    """

    def __init__(
        self,
        *,
        api_base: str,
        api_key: str | None,
        timeout_seconds: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        base = api_base.rstrip("/")
        self._url = f"{base}/chat/completions"
        self._models_url = f"{base}/models"
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._http_client = http_client

    async def create_completion(self, turns: Sequence[Turn], options: CompletionOptions) -> str:
        body = self._payload(turns, options, stream=False)
        try:
            async with self._client() as client:
                response = await client.post(self._url, json=body, headers=self._headers())
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise _status_error(exc) from exc
        except httpx.HTTPError as exc:
            raise UpstreamStatusError(None, f"transport error: {exc!s}") from exc

        content = extract_message_content(data if isinstance(data, dict) else {})
        logger.info("upstream.complete chars={} est_tokens={}", len(content), estimate_tokens(content))
        return content

    async def stream_completion(self, turns: Sequence[Turn], options: CompletionOptions) -> AsyncIterator[str]:
        body = self._payload(turns, options, stream=True)
        chunks = 0
        try:
            async with self._client() as client:
                async with client.stream("POST", self._url, json=body, headers=self._headers()) as response:
                    if response.is_error:
                        await response.aread()
                    response.raise_for_status()
                    async for raw_line in response.aiter_lines():
                        content, done = parse_sse_line(raw_line)
                        if done:
                            break
                        if content:
                            chunks += 1
                            yield content
        except httpx.HTTPStatusError as exc:
            raise _status_error(exc) from exc
        except httpx.HTTPError as exc:
            raise UpstreamStatusError(None, f"transport error: {exc!s}") from exc
        logger.debug("upstream.stream.finish chunks={}", chunks)

    async def test_connection(self) -> bool:
        """List ``{api_base}/models``; any HTTP or transport error means not connected."""
        try:
            async with self._client() as client:
                response = await client.get(self._models_url, headers=self._headers())
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("upstream.connection_test.failed error={}", exc)
            return False
        logger.info("upstream.connection_test.ok")
        return True

    def _client(self) -> httpx.AsyncClient | _Borrowed:
        if self._http_client is not None:
            return _Borrowed(self._http_client)
        return httpx.AsyncClient(timeout=self._timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"content-type": "application/json"}
        if self._api_key:
            headers["authorization"] = f"Bearer {self._api_key}"
        return headers

    @staticmethod
    def _payload(turns: Sequence[Turn], options: CompletionOptions, *, stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": options.model,
            "messages": [turn.as_message() for turn in turns],
            "temperature": options.temperature,
            "stream": stream,
        }
        if options.max_tokens:
            body["max_tokens"] = options.max_tokens
        return body


class _Borrowed:
    """Async context wrapper that leaves an injected client open."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def __aenter__(self) -> httpx.AsyncClient:
        return self._client

    async def __aexit__(self, *_: object) -> None:
        return None


def parse_sse_line(raw_line: str | None) -> tuple[str | None, bool]:
    """Return ``(content, done)`` for one server-sent-events line."""
    line = raw_line.strip() if raw_line else ""
    if not line.startswith("data:"):
        return None, False
    data = line.split(":", 1)[1].strip()
    if data == DONE_MARKER:
        return None, True
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        return None, False
    choices = event.get("choices") if isinstance(event, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None, False
    choice = choices[0]
    delta = choice.get("delta")
    content = delta.get("content") if isinstance(delta, dict) else None
    if content is None:
        content = choice.get("text")
    if isinstance(content, str) and content:
        return content, False
    return None, False


def extract_message_content(data: dict[str, Any]) -> str:
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        choice = choices[0]
        if isinstance(choice, dict):
            message = choice.get("message")
            if isinstance(message, dict) and message.get("content") is not None:
                return str(message["content"])
            if choice.get("text") is not None:
                return str(choice["text"])
    return ""


def _status_error(exc: httpx.HTTPStatusError) -> UpstreamStatusError:
    response = exc.response
    message = _error_message(response) or str(exc)
    return UpstreamStatusError(response.status_code, message)


def _error_message(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except (ValueError, httpx.ResponseNotRead):
        return None
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return None
