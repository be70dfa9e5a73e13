"""Terminal rendering for the Assist CLI."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.table import Table

from assist.core.breaker import CircuitBreakerStats
from assist.core.types import Session


class Renderer:
    """CLI renderer using Rich for terminal output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def welcome(self, model: str, provider: str) -> None:
        self.console.print("[bold blue]Assist[/bold blue] - resilient streaming chat")
        self.console.print(f"[bold]Provider:[/bold] [magenta]{provider}[/magenta]  [bold]Model:[/bold] {model}")
        self.console.print("[dim]Commands: ,stats ,reset ,sessions ,sweep [minutes] ,new ,quit[/dim]")

    def info(self, message: str) -> None:
        self.console.print(message)

    def error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {message}")

    def assistant_prefix(self) -> None:
        self.console.print("[bold yellow]Assist:[/bold yellow] ", end="")

    def chunk(self, text: str) -> None:
        self.console.print(text, end="", markup=False, highlight=False, soft_wrap=True)

    def end_reply(self) -> None:
        self.console.print()

    def breaker_stats(self, stats: CircuitBreakerStats) -> None:
        table = Table(title="Circuit breaker", show_header=False)
        table.add_row("state", stats.state.value)
        table.add_row("consecutive failures", str(stats.consecutive_failures))
        table.add_row("consecutive successes", str(stats.consecutive_successes))
        table.add_row("last failure at", "-" if stats.last_failure_at is None else f"{stats.last_failure_at:.3f}")
        self.console.print(table)

    def sessions(self, sessions: list[Session], current: str | None) -> None:
        table = Table(title=f"Sessions ({len(sessions)})")
        table.add_column("id")
        table.add_column("turns", justify="right")
        table.add_column("last activity")
        for session in sessions:
            marker = " *" if session.id == current else ""
            table.add_row(f"{session.id}{marker}", str(len(session.turns)), session.last_activity_at.isoformat())
        self.console.print(table)

    def report(self, title: str, data: dict[str, Any]) -> None:
        table = Table(title=title, show_header=False)
        for key, value in _flatten(data):
            table.add_row(key, str(value))
        self.console.print(table)


def _flatten(data: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    rows: list[tuple[str, Any]] = []
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, f"{name}."))
        else:
            rows.append((name, value))
    return rows
