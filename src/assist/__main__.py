"""Assist CLI bootstrap."""

from assist.cli import app

if __name__ == "__main__":
    app()
