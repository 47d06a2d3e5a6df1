"""CLI entry point."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from typing import Any, NoReturn, Optional, TypeVar
from urllib.parse import urlsplit, urlunsplit

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from docqueue.core.config import Settings, get_settings
from docqueue.core.exceptions import DocQueueError
from docqueue.models.message import Message
from docqueue.queue.base import AbstractQueue
from docqueue.queue.factory import create_queue
from docqueue.utils.timestamps import add_duration, utcnow

T = TypeVar("T")

app = typer.Typer(
    name="docqueue",
    help="Priority and delay queue on a document collection",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(
    ctx: typer.Context,
    url: Optional[str] = typer.Option(None, "--url", help="Connection URL (default: DOCQUEUE_URL)"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Database name"),
    collection: Optional[str] = typer.Option(None, "--collection", "-c", help="Collection name"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
) -> None:
    """Priority and delay queue on a document collection."""
    overrides = {
        "url": url,
        "database": database,
        "collection": collection,
        "log_level": log_level,
    }
    settings = get_settings(**{k: v for k, v in overrides.items() if v is not None})
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    ctx.obj = settings


# --- Helpers ---


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(code=1)


def _parse_json(value: str | None, name: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        _fail(f"{name} is not valid JSON: {exc}")


def _parse_object(value: str | None, name: str) -> dict[str, Any] | None:
    parsed = _parse_json(value, name)
    if parsed is not None and not isinstance(parsed, dict):
        _fail(f"{name} must be a JSON object")
    return parsed


def _queue(ctx: typer.Context) -> AbstractQueue:
    settings: Settings = ctx.obj
    try:
        return create_queue(settings=settings)
    except DocQueueError as exc:
        _fail(str(exc))


def _run(coroutine: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coroutine)
    except DocQueueError as exc:
        _fail(str(exc))


def _mask_url(url: str) -> str:
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


def _print_message(message: Message) -> None:
    console.print_json(
        data={
            "id": str(message.id),
            "priority": message.priority,
            "earliest_get": message.earliest_get.isoformat(),
            "payload": message.payload,
        },
        default=str,
    )


# --- Commands ---


@app.command()
def version() -> None:
    """Show version."""
    from docqueue import __version__

    console.print(f"docqueue {__version__}")


@app.command()
def info(ctx: typer.Context) -> None:
    """Show version and connection settings."""
    import sys

    from docqueue import __version__

    settings: Settings = ctx.obj
    console.print(f"[bold]docqueue[/bold] {__version__}")
    console.print(f"Python {sys.version}")
    console.print(f"URL: {_mask_url(settings.url)}")
    console.print(f"Collection: {settings.database}.{settings.collection}")


@app.command()
def send(
    ctx: typer.Context,
    payload: str = typer.Argument(..., help="Message payload as a JSON object"),
    priority: float = typer.Option(0.0, "--priority", "-p", help="Lower is served first"),
    delay: float = typer.Option(0.0, "--delay", help="Seconds before the message is visible"),
) -> None:
    """Send a message."""
    document = _parse_object(payload, "payload")
    queue = _queue(ctx)

    async def _send() -> Message:
        return await queue.send(document, earliest_get=add_duration(utcnow(), delay), priority=priority)

    message = _run(_send())
    console.print(f"Sent message [bold]{message.id}[/bold]")


@app.command()
def count(
    ctx: typer.Context,
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Payload query as JSON"),
    running: Optional[bool] = typer.Option(
        None, "--running/--not-running", help="Only claimed or only visible messages"
    ),
) -> None:
    """Count messages."""
    filters = _parse_object(query, "query")
    queue = _queue(ctx)
    total = _run(queue.count(filters, running=running))
    console.print(total)


@app.command()
def get(
    ctx: typer.Context,
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Payload query as JSON"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum messages to claim"),
    wait: Optional[float] = typer.Option(None, "--wait", help="Seconds to wait for messages"),
    visibility: Optional[float] = typer.Option(
        None, "--visibility", help="Seconds claimed messages stay hidden"
    ),
    ack: bool = typer.Option(False, "--ack", help="Acknowledge messages after printing"),
) -> None:
    """Claim and print messages."""
    filters = _parse_object(query, "query")
    queue = _queue(ctx)

    async def _get() -> list[Message]:
        # Unset options fall back to the queue's defaults from Settings.
        messages = await queue.get(
            filters,
            running_reset_duration=visibility,
            wait_duration=wait,
            limit=limit,
        )
        for message in messages:
            _print_message(message)
            if ack:
                await queue.ack(message)
        return messages

    messages = _run(_get())
    if not messages:
        console.print("[yellow]No messages available[/yellow]")


@app.command("ensure-get-index")
def ensure_get_index(
    ctx: typer.Context,
    before: Optional[str] = typer.Option(None, "--before", help="Payload fields before the sort, as JSON"),
    after: Optional[str] = typer.Option(None, "--after", help="Payload fields after the sort, as JSON"),
) -> None:
    """Ensure the index used by get()."""
    before_sort = _parse_object(before, "before")
    after_sort = _parse_object(after, "after")
    queue = _queue(ctx)
    _run(queue.ensure_get_index(before_sort, after_sort))
    console.print("[green]Index ensured[/green]")


@app.command("ensure-count-index")
def ensure_count_index(
    ctx: typer.Context,
    fields: Optional[str] = typer.Option(None, "--fields", help="Payload fields as JSON"),
    include_running: bool = typer.Option(False, "--include-running", help="Lead with the visibility field"),
) -> None:
    """Ensure an index used by count()."""
    index_fields = _parse_object(fields, "fields") or {}
    queue = _queue(ctx)
    _run(queue.ensure_count_index(index_fields, include_running))
    console.print("[green]Index ensured[/green]")


if __name__ == "__main__":
    app()
