"""crl search commands - name and semantic lookup."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from coderecall.cli.utils import handle_errors, open_workspace
from coderecall.index import EmbeddableUnit, SearchHit
from coderecall.providers.retry import RetryPolicy, call_with_retry

_path_option = click.option(
    "--path",
    "path",
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Repository root (default: the enclosing repository)",
)


def _render(units: list[EmbeddableUnit], scores: list[float] | None = None) -> None:
    console = Console()
    if not units:
        console.print("[yellow]No matches[/yellow]")
        return
    table = Table(show_header=True, header_style="bold")
    if scores is not None:
        table.add_column("Score", justify="right")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Location")
    table.add_column("Summary", overflow="fold")
    for i, unit in enumerate(units):
        row = [
            unit.name,
            unit.kind.value,
            f"{unit.source}:{unit.start_line}-{unit.end_line}",
            unit.summary,
        ]
        if scores is not None:
            row.insert(0, f"{scores[i]:.3f}")
        table.add_row(*row)
    console.print(table)


@click.group()
def search_group() -> None:
    """Look up indexed units."""


@search_group.command("functions")
@click.argument("name")
@_path_option
@handle_errors
def search_functions(name: str, path: Path | None) -> None:
    """Functions and methods named NAME."""
    with open_workspace(path, with_provider=False) as ws:
        _render(ws.indexer.search_functions(name))


@search_group.command("classes")
@click.argument("name")
@_path_option
@handle_errors
def search_classes(name: str, path: Path | None) -> None:
    """Classes (and Go structs) named NAME."""
    with open_workspace(path, with_provider=False) as ws:
        _render(ws.indexer.search_classes(name))


@search_group.command("semantic")
@click.argument("query")
@click.option("--top-k", type=int, default=None, help="Number of results")
@_path_option
@handle_errors
def search_semantic(query: str, top_k: int | None, path: Path | None) -> None:
    """Units closest in meaning to QUERY."""
    with open_workspace(path) as ws:
        provider = ws.provider
        if provider is None:
            raise click.ClickException("No embedding provider configured")
        policy = RetryPolicy.from_config(ws.config.embedding)
        vector = call_with_retry(lambda: provider.embed(query), policy, operation="embed_query")
        hits: list[SearchHit] = ws.indexer.semantic_search(
            vector,
            top_k=top_k or ws.config.search.top_k,
            diversity=ws.config.search.diversity,
        )
    _render([h.unit for h in hits], [h.score for h in hits])
