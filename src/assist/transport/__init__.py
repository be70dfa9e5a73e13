"""Transport boundary models."""

from assist.transport.events import ChunkEvent, ErrorEvent, SendMessage, stream_events

__all__ = ["ChunkEvent", "ErrorEvent", "SendMessage", "stream_events"]
