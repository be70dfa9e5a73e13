"""Application runtime."""

from assist.app.runtime import AppRuntime

__all__ = ["AppRuntime"]
