"""Session orchestration: transcripts, context building and streamed replies."""

from __future__ import annotations

import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger

from assist.core.context import ContextWindowManager
from assist.core.pipeline import FragmentStream, StreamingCompletionPipeline
from assist.core.types import Fragment, Role, Session, Turn, new_id, utc_now
from assist.errors import AssistError, InvalidMessageError, SessionBusyError, SessionNotFoundError
from assist.logging_utils import bind_session

DEFAULT_MAX_SESSION_AGE_MINUTES = 60.0


@dataclass
class Submission:
    """Handle for one submitted user turn."""

    assistant_turn_id: str
    session_id: str
    fragments: AsyncIterator[Fragment]
    _release: Callable[[], None] = field(repr=False)

    def __aiter__(self) -> AsyncIterator[Fragment]:
        return self.fragments

    async def aclose(self) -> None:
        """Cancel the reply; safe to call at any point, including before iteration."""
        aclose = getattr(self.fragments, "aclose", None)
        if aclose is not None:
            await aclose()
        self._release()


class SessionOrchestrator:
    """Owns the in-memory session map and drives one completion per submit.

    A session accepts one submit at a time; the assistant turn is committed
    only when the stream finishes cleanly.
    """

    def __init__(
        self,
        pipeline: StreamingCompletionPipeline,
        context: ContextWindowManager | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._pipeline = pipeline
        self._context = context or ContextWindowManager()
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._in_flight: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def pipeline(self) -> StreamingCompletionPipeline:
        return self._pipeline

    def submit(self, text: str, session_id: str | None = None) -> Submission:
        content = text.strip() if isinstance(text, str) else ""
        if not content:
            raise InvalidMessageError("Message must not be empty")

        assistant_turn_id = new_id()
        session = self._claim(session_id, assistant_turn_id)
        try:
            with bind_session(session.id):
                user_turn = Turn.create(Role.USER, content, session.id, created_at=self._clock())
                session.append(user_turn)
                session.last_activity_at = user_turn.created_at
                logger.info("session.user_turn turns={}", len(session.turns))

                prompt = self._context.fit(session.turns, session_id=session.id)
                stream = self._pipeline.stream(prompt, request_id=assistant_turn_id)
        except BaseException:
            self._release(session.id, assistant_turn_id)
            raise

        return Submission(
            assistant_turn_id=assistant_turn_id,
            session_id=session.id,
            fragments=self._relay(session, stream, assistant_turn_id),
            _release=lambda: self._release(session.id, assistant_turn_id),
        )

    async def _relay(self, session: Session, stream: FragmentStream, assistant_turn_id: str) -> AsyncIterator[Fragment]:
        log = logger.bind(session=session.id)
        buffer: list[str] = []
        attempt = 1
        try:
            async for fragment in stream:
                if fragment.attempt != attempt:
                    # A retry restarted generation; earlier partial text is superseded.
                    buffer.clear()
                    attempt = fragment.attempt
                if fragment.is_final:
                    self._commit(session, assistant_turn_id, "".join(buffer))
                else:
                    buffer.append(fragment.text)
                yield fragment
        except AssistError as exc:
            exc.with_context(session_id=session.id)
            log.error("session.reply_failed error={}", exc)
            raise
        finally:
            await stream.aclose()
            self._release(session.id, assistant_turn_id)

    def _commit(self, session: Session, turn_id: str, text: str) -> None:
        turn = Turn.create(Role.ASSISTANT, text, session.id, turn_id=turn_id, created_at=self._clock())
        session.append(turn)
        session.last_activity_at = turn.created_at
        logger.info("session.assistant_turn session={} chars={}", session.id, len(text))

    def _claim(self, session_id: str | None, owner: str) -> Session:
        with self._lock:
            resolved = session_id or new_id()
            # The claim outlives a delete of the session entry.
            if resolved in self._in_flight:
                raise SessionBusyError(resolved)
            session = self._sessions.get(resolved)
            if session is None:
                now = self._clock()
                session = Session(id=resolved, created_at=now, last_activity_at=now)
                self._sessions[resolved] = session
                logger.info("session.created session={}", resolved)
            self._in_flight[resolved] = owner
            return session

    def _release(self, session_id: str, owner: str) -> None:
        with self._lock:
            if self._in_flight.get(session_id) == owner:
                del self._in_flight[session_id]

    def find_session(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def get_session(self, session_id: str) -> Session:
        session = self.find_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def is_busy(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._in_flight

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)
        logger.info("session.deleted session={}", session_id)

    def get_active_session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear_older_than(self, max_age_minutes: float = DEFAULT_MAX_SESSION_AGE_MINUTES) -> int:
        cutoff = self._clock() - timedelta(minutes=max_age_minutes)
        with self._lock:
            stale = [
                sid
                for sid, session in self._sessions.items()
                if session.last_activity_at < cutoff and sid not in self._in_flight
            ]
            for sid in stale:
                del self._sessions[sid]
        if stale:
            logger.info("session.sweep removed={} max_age_minutes={}", len(stale), max_age_minutes)
        return len(stale)
