"""Typer application for Assist."""

from __future__ import annotations

import asyncio
import json

import typer
from loguru import logger

from assist.app import AppRuntime
from assist.cli.render import Renderer
from assist.config import Settings, load_settings
from assist.errors import AssistError, ChatError, ConfigurationError
from assist.logging_utils import configure_logging
from assist.transport import ChunkEvent, SendMessage, stream_events

app = typer.Typer(name="assist", help="Resilient streaming chat over an LLM provider.", add_completion=False)

QUIT_COMMANDS = {",quit", ",exit", ",q"}


def _build_runtime(settings: Settings) -> AppRuntime:
    try:
        return AppRuntime(settings)
    except ConfigurationError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(1) from exc


@app.command()
def run(
    message: str = typer.Argument(..., help="Message to send"),
    session_id: str | None = typer.Option(None, "--session-id", "-s", help="Existing session id"),
    as_json: bool = typer.Option(False, "--json", help="Print one transport event per line"),
) -> None:
    """Send one message and stream the reply to stdout."""

    settings = load_settings()
    configure_logging(level=settings.log_level)
    runtime = _build_runtime(settings)
    failed = asyncio.run(_run_once(runtime, SendMessage(message=message, session_id=session_id), as_json=as_json))
    if failed:
        raise typer.Exit(1)


async def _run_once(runtime: AppRuntime, request: SendMessage, *, as_json: bool) -> bool:
    failed = False
    async for event in stream_events(runtime.orchestrator, request):
        if as_json:
            typer.echo(json.dumps(event.to_wire(), ensure_ascii=False))
        elif isinstance(event, ChunkEvent):
            typer.echo(event.chunk, nl=event.is_complete)
        else:
            typer.echo(f"error: {event.message}: {event.details or event.code}", err=True)
        if not isinstance(event, ChunkEvent):
            failed = True
    return failed


@app.command()
def chat(
    session_id: str | None = typer.Option(None, "--session-id", "-s", help="Resume a session id"),
) -> None:
    """Interactive chat loop."""

    settings = load_settings()
    configure_logging(profile="chat", level=settings.log_level)
    runtime = _build_runtime(settings)
    asyncio.run(_chat_loop(runtime, Renderer(), session_id))


async def _chat_loop(runtime: AppRuntime, renderer: Renderer, session_id: str | None) -> None:
    renderer.welcome(runtime.settings.model, runtime.settings.provider)
    async with runtime:
        while True:
            try:
                raw = await asyncio.to_thread(renderer.console.input, "[bold cyan]You:[/bold cyan] ")
            except (EOFError, KeyboardInterrupt):
                renderer.info("[dim]bye[/dim]")
                return

            line = raw.strip()
            if not line:
                continue
            if line.startswith(","):
                if line in QUIT_COMMANDS:
                    return
                session_id = _handle_command(line, runtime, renderer, session_id)
                continue
            session_id = await _reply(runtime, renderer, line, session_id)


async def _reply(runtime: AppRuntime, renderer: Renderer, text: str, session_id: str | None) -> str | None:
    try:
        submission = runtime.submit(text, session_id)
    except ChatError as exc:
        renderer.error(exc.message)
        return session_id

    renderer.assistant_prefix()
    try:
        async for fragment in submission:
            renderer.chunk(fragment.text)
    except AssistError as exc:
        renderer.end_reply()
        renderer.error(str(exc))
    except KeyboardInterrupt:
        renderer.end_reply()
        renderer.info("[dim]cancelled[/dim]")
    else:
        renderer.end_reply()
    finally:
        await submission.aclose()
    return submission.session_id


def _handle_command(line: str, runtime: AppRuntime, renderer: Renderer, session_id: str | None) -> str | None:
    name, _, arg = line[1:].partition(" ")
    if name == "stats":
        renderer.breaker_stats(runtime.get_circuit_breaker_stats())
    elif name == "reset":
        runtime.reset_circuit_breaker()
        renderer.info("circuit breaker reset")
    elif name == "sessions":
        renderer.sessions(runtime.orchestrator.list_sessions(), session_id)
    elif name == "sweep":
        try:
            minutes = float(arg) if arg.strip() else runtime.settings.max_session_age_minutes
        except ValueError:
            renderer.error(f"invalid minutes: {arg}")
            return session_id
        removed = runtime.clear_older_than(minutes)
        renderer.info(f"removed {removed} idle sessions")
        if session_id is not None and runtime.orchestrator.find_session(session_id) is None:
            return None
    elif name == "new":
        renderer.info("starting a new session")
        return None
    else:
        logger.debug("cli.unknown_command name={}", name)
        renderer.error(f"unknown command: ,{name}")
    return session_id


@app.command()
def health(
    check_connection: bool = typer.Option(
        True, "--check-connection/--no-check-connection", help="Call the provider to verify credentials"
    ),
) -> None:
    """Show runtime health and readiness."""

    settings = load_settings()
    configure_logging(level=settings.log_level)
    renderer = Renderer()
    try:
        runtime = AppRuntime(settings)
    except ConfigurationError as exc:
        renderer.report("ready", {"status": "not_ready", "error": str(exc)})
        raise typer.Exit(1) from exc
    renderer.report("health", runtime.health())
    renderer.report("ready", runtime.ready())
    if not check_connection:
        return
    connection = asyncio.run(runtime.test_connection())
    renderer.report("connection", connection)
    if connection["status"] != "healthy":
        raise typer.Exit(1)
