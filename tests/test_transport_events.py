from __future__ import annotations

import pytest
from pydantic import ValidationError

from assist.core.orchestrator import SessionOrchestrator
from assist.errors import FastFailError, RateLimitError, RetriesExhaustedError, SessionBusyError, UpstreamStatusError
from assist.transport import ChunkEvent, ErrorEvent, SendMessage, stream_events
from assist.transport.events import error_code


@pytest.fixture
def make_orchestrator(make_pipeline):
    def _make(scripts=None, **options) -> SessionOrchestrator:
        return SessionOrchestrator(make_pipeline(scripts, **options))

    return _make


async def _events(orchestrator: SessionOrchestrator, request: SendMessage) -> list[ChunkEvent | ErrorEvent]:
    return [event async for event in stream_events(orchestrator, request)]


def test_send_message_accepts_camel_case() -> None:
    request = SendMessage.model_validate({"message": "hi", "sessionId": "abc"})

    assert request.session_id == "abc"
    assert SendMessage(message="hi").session_id is None


@pytest.mark.parametrize("message", ["", "   ", "x" * 4001])
def test_send_message_validation(message: str) -> None:
    with pytest.raises(ValidationError):
        SendMessage(message=message)


def test_chunk_event_wire_shape() -> None:
    event = ChunkEvent(id="turn-1", chunk="Hi", is_complete=False)

    assert event.to_wire() == {"id": "turn-1", "chunk": "Hi", "isComplete": False}


def test_error_event_wire_shape_omits_empty_fields() -> None:
    assert ErrorEvent(message="Failed to generate response").to_wire() == {"message": "Failed to generate response"}


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (FastFailError(3), "fast_fail"),
        (SessionBusyError("s"), "session_busy"),
        (RetriesExhaustedError(RateLimitError("slow"), 3), "retries_exhausted"),
        (ValueError("x"), "value"),
    ],
)
def test_error_code(exc: BaseException, code: str) -> None:
    assert error_code(exc) == code


@pytest.mark.asyncio
async def test_successful_stream_ends_with_complete_chunk(make_orchestrator) -> None:
    orchestrator = make_orchestrator([["Hello", " there"]])

    events = await _events(orchestrator, SendMessage(message="hi"))

    assert all(isinstance(event, ChunkEvent) for event in events)
    assert [event.chunk for event in events] == ["Hello", " there", ""]
    assert [event.is_complete for event in events] == [False, False, True]
    assert len({event.id for event in events}) == 1


@pytest.mark.asyncio
async def test_upstream_failure_becomes_error_event(make_orchestrator) -> None:
    orchestrator = make_orchestrator([(["partial"], UpstreamStatusError(500))], max_retries=1)

    events = await _events(orchestrator, SendMessage(message="hi"))

    assert isinstance(events[0], ChunkEvent)
    assert events[0].chunk == "partial"
    error = events[-1]
    assert isinstance(error, ErrorEvent)
    assert error.message == "Failed to generate response"
    assert error.code == "retries_exhausted"
    assert "upstream status 500" in (error.details or "")


@pytest.mark.asyncio
async def test_busy_session_becomes_error_event(make_orchestrator) -> None:
    orchestrator = make_orchestrator()
    pending = orchestrator.submit("first")

    events = await _events(orchestrator, SendMessage(message="second", session_id=pending.session_id))

    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)
    assert events[0].code == "session_busy"
    await pending.aclose()


@pytest.mark.asyncio
async def test_abandoned_consumer_releases_session(make_orchestrator) -> None:
    orchestrator = make_orchestrator([["a", "b", "c"]])
    events = stream_events(orchestrator, SendMessage(message="hi", session_id="s-1"))

    first = await anext(events)
    await events.aclose()

    assert isinstance(first, ChunkEvent)
    assert not orchestrator.is_busy("s-1")
