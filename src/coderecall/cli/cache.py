"""crl cache commands - inspect and clear the AI result cache."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from coderecall.cli.utils import handle_errors, open_workspace
from coderecall.core.progress import status

_path_option = click.option(
    "--path",
    "path",
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Repository root (default: the enclosing repository)",
)


@click.group()
def cache_group() -> None:
    """Manage the dependency-aware result cache."""


@cache_group.command("stats")
@_path_option
@handle_errors
def cache_stats(path: Path | None) -> None:
    """Show entry count and size."""
    with open_workspace(path, with_provider=False) as ws:
        cache = ws.open_cache()
        try:
            stats = cache.stats()
        finally:
            cache.close()

    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Entries", str(stats.entries))
    table.add_row("Size", f"{stats.total_bytes / 1024:.1f} KiB")
    table.add_row("Budget", f"{stats.max_bytes / (1024 * 1024):.1f} MiB")
    table.add_row("Utilization", f"{stats.utilization:.1%}")
    Console().print(table)


@cache_group.command("clear")
@_path_option
@handle_errors
def cache_clear(path: Path | None) -> None:
    """Delete every cached entry."""
    with open_workspace(path, with_provider=False) as ws:
        cache = ws.open_cache()
        try:
            cache.clear()
        finally:
            cache.close()
    status("Cache cleared", style="success")
