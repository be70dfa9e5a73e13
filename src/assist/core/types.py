"""Conversation data types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid.uuid4().hex


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One message in a conversation."""

    id: str
    role: Role
    text: str
    created_at: datetime
    session_id: str

    @classmethod
    def create(
        cls,
        role: Role,
        text: str,
        session_id: str,
        *,
        turn_id: str | None = None,
        created_at: datetime | None = None,
    ) -> Turn:
        return cls(
            id=turn_id or new_id(),
            role=role,
            text=text,
            created_at=created_at or utc_now(),
            session_id=session_id,
        )

    def as_message(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.text}


@dataclass
class Session:
    """In-memory transcript owned by the orchestrator."""

    id: str
    turns: list[Turn] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    last_activity_at: datetime = field(default_factory=utc_now)

    def append(self, turn: Turn) -> None:
        self.turns.append(turn)


@dataclass(frozen=True)
class Fragment:
    """One unit of a streamed completion.

    ``attempt`` is the upstream attempt that produced the text; a retry
    restarts generation, so text from an older attempt is superseded.
    """

    text: str
    is_final: bool = False
    attempt: int = 1

    @classmethod
    def final(cls, attempt: int = 1) -> Fragment:
        return cls(text="", is_final=True, attempt=attempt)
