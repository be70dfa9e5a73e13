"""Completion provider clients."""

from assist.upstream.base import CompletionClient, CompletionOptions
from assist.upstream.factory import build_completion_client, build_completion_options
from assist.upstream.openai_compat import OpenAICompatClient
from assist.upstream.toy import ToyCompletionClient

__all__ = [
    "CompletionClient",
    "CompletionOptions",
    "OpenAICompatClient",
    "ToyCompletionClient",
    "build_completion_client",
    "build_completion_options",
]
