"""Runtime logging helpers."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Literal

import loguru
from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

LogProfile = Literal["default", "chat"]

DEFAULT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {name}:{function}:{line} | {extra[session]} | {message}"
CHAT_FORMAT = "[{extra[session]}] {message}"

_configured: tuple[LogProfile, str] | None = None

current_session: ContextVar[str] = ContextVar("assist_session", default="-")


@contextmanager
def bind_session(session_id: str) -> Iterator[None]:
    """Expose ``session_id`` to log records emitted inside the block."""
    token = current_session.set(session_id)
    try:
        yield
    finally:
        current_session.reset(token)


def _inject_context(record: loguru.Record) -> None:
    # logger.bind(session=...) takes precedence over the ambient session.
    record["extra"].setdefault("session", current_session.get())


def configure_logging(*, profile: LogProfile = "default", level: str | None = None) -> None:
    """Route loguru records for the given profile.

    ``chat`` renders through rich on stderr so log lines never interleave with
    a reply streamed to stdout. Calling again with the same profile and level
    is a no-op.
    """
    global _configured
    resolved_level = (level or os.getenv("ASSIST_LOG_LEVEL", "INFO")).upper()
    if _configured == (profile, resolved_level):
        return

    logger.remove()
    logger.configure(patcher=_inject_context)
    if profile == "chat":
        handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False, markup=False)
        logger.add(handler, level=resolved_level, format=CHAT_FORMAT, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, level=resolved_level, format=DEFAULT_FORMAT, backtrace=False, diagnose=False)
    _configured = (profile, resolved_level)
