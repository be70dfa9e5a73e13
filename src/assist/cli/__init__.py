"""Command line interface."""

from assist.cli.app import app

__all__ = ["app"]
