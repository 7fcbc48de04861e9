"""crl index command - build or refresh the repository index."""

from pathlib import Path

import click

from coderecall.cli.utils import handle_errors, open_workspace
from coderecall.core.progress import pluralize, spinner, status


@click.command()
@click.argument(
    "path", default=None, required=False, type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--rebuild", is_flag=True, help="Discard the stored index and rebuild from scratch")
@click.option("--no-embed", is_flag=True, help="Parse and store units without computing vectors")
@handle_errors
def index_command(path: Path | None, rebuild: bool, no_embed: bool) -> None:
    """Index the repository at PATH (default: the enclosing repository).

    Unchanged files keep their stored vectors, so re-running is cheap.
    """
    with open_workspace(path, with_provider=not no_embed) as ws:
        if rebuild:
            ws.indexer.clear_cache()
            status("Cleared stored index")

        with spinner(f"Indexing {ws.root}") as advance:
            ws.indexer.build_index(on_file=advance)
        report = ws.indexer.last_report
        stats = ws.indexer.get_stats()

    if report is None:
        return
    status(
        f"Indexed {pluralize(report.files_indexed, 'file')}, "
        f"reused {pluralize(report.files_reused, 'file')}, "
        f"removed {report.files_removed} ({report.elapsed_ms} ms)",
        style="success",
    )
    status(
        f"{pluralize(sum(stats.units_by_kind.values()), 'unit')}, "
        f"{stats.embedded} embedded, {report.units_embedded} newly",
        indent=2,
    )
    if report.files_skipped:
        status(f"Skipped {pluralize(report.files_skipped, 'file')}", style="warning")
        for warning in report.warnings:
            status(warning, indent=4)
    if report.embed_failures:
        status(
            f"{pluralize(report.embed_failures, 'unit')} could not be embedded; "
            "they are excluded from semantic search",
            style="warning",
        )
