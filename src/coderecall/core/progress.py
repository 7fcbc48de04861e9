"""Terminal feedback for crl commands.

Everything goes to stderr so that ``crl context`` output can be piped.
While a live display is up, console log handlers are muted through
``suppress_console_logs``; file handlers keep writing.
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import structlog
from rich.console import Console

_console = Console(stderr=True)

_MARKERS = {
    "success": "[green]✓[/green] ",
    "error": "[red]✗[/red] ",
    "warning": "[yellow]![/yellow] ",
    "info": "  ",
}

_live = threading.local()


def is_console_suppressed() -> bool:
    return getattr(_live, "active", False)


@contextmanager
def suppress_console_logs() -> Iterator[None]:
    _live.active = True
    try:
        yield
    finally:
        _live.active = False


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    """Print one status line, prefixed with the marker for ``style``."""
    _console.print(f"{' ' * indent}{_MARKERS.get(style, '')}{message}", highlight=False)
    structlog.get_logger().debug("cli.status", message=message, style=style)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """``pluralize(1, "file")`` is "1 file", ``pluralize(3, "file")`` is "3 files"."""
    return f"{count} {singular if count == 1 else (plural or singular + 's')}"


@contextmanager
def spinner(message: str) -> Iterator[Callable[[str], None]]:
    """Show a spinner until the block exits.

    Yields a callback to be invoked with each finished file path; on a TTY
    the spinner text tracks how many files are done and the latest one.
    Off a TTY a single plain line is printed and the callback is a no-op.
    """
    if not sys.stderr.isatty():
        _console.print(f"{message}...", highlight=False)
        yield lambda _path: None
        return

    done = 0
    with suppress_console_logs(), _console.status(f"[cyan]{message}[/cyan]", spinner="dots") as live:

        def advance(path: str) -> None:
            nonlocal done
            done += 1
            live.update(f"[cyan]{message}[/cyan] [dim]{pluralize(done, 'file')} · {path}[/dim]")

        yield advance
