"""Transport-facing message and event models."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator
from typing import Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from assist.core.orchestrator import Submission
from assist.errors import AssistError, ChatError

FAILED_RESPONSE_MESSAGE = "Failed to generate response"
MAX_MESSAGE_CHARS = 4000


class Submitter(Protocol):
    def submit(self, text: str, session_id: str | None = None) -> Submission: ...


class SendMessage(BaseModel):
    """Inbound ``{message, sessionId?}`` request."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1, max_length=MAX_MESSAGE_CHARS)
    session_id: str | None = Field(default=None, alias="sessionId")

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value


class ChunkEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    chunk: str
    is_complete: bool = Field(alias="isComplete")

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)


class ErrorEvent(BaseModel):
    message: str
    details: str | None = None
    code: str | None = None

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


def error_code(exc: BaseException) -> str:
    name = type(exc).__name__
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name.removesuffix("Error")).lower() or "error"


async def stream_events(submitter: Submitter, request: SendMessage) -> AsyncIterator[ChunkEvent | ErrorEvent]:
    """Turn one submission into chunk events, ending in a completion or error event."""
    try:
        submission = submitter.submit(request.message, request.session_id)
    except ChatError as exc:
        yield ErrorEvent(message=exc.message, code=error_code(exc))
        return

    try:
        async for fragment in submission:
            yield ChunkEvent(id=submission.assistant_turn_id, chunk=fragment.text, is_complete=fragment.is_final)
    except AssistError as exc:
        logger.error("transport.stream_failed session={} error={}", submission.session_id, exc)
        yield ErrorEvent(message=FAILED_RESPONSE_MESSAGE, details=exc.message, code=error_code(exc))
    finally:
        await submission.aclose()
