"""crl clear command - remove the persisted index of a repository."""

import shutil
from pathlib import Path

import click
import questionary
from rich.console import Console

from coderecall.cli.utils import find_repo_root, handle_errors
from coderecall.config.constants import BUILD_LOCK_NAME, CACHE_DB_NAME
from coderecall.config.loader import get_repo_data_dir, load_config
from coderecall.index import CodebaseIndexer


def clear_repo(repo_root: Path, *, yes: bool = False, include_cache: bool = False) -> bool:
    """Remove the stored index (and optionally the result cache) of a repository.

    The index database is removed under the build lock, so a running build
    finishes first. The lock file itself is kept.

    Returns True if cleared or nothing was stored, False if cancelled or a
    removal failed.
    """
    console = Console(stderr=True)
    config = load_config(repo_root)
    data_dir = get_repo_data_dir(config, repo_root)

    targets = sorted(data_dir.iterdir()) if data_dir.exists() else []
    targets = [p for p in targets if p.name != BUILD_LOCK_NAME]
    if not include_cache:
        targets = [p for p in targets if not p.name.startswith(CACHE_DB_NAME)]

    if not targets:
        console.print("[yellow]Nothing to clear[/yellow] - no stored index found")
        return True

    console.print("\n[bold]The following will be permanently deleted:[/bold]\n")
    for target in targets:
        console.print(f"  [cyan]•[/cyan] {target}")
    console.print()

    if not yes:
        answer = questionary.select(
            "This action cannot be undone. Are you sure?",
            choices=[
                questionary.Choice("No, keep the index", value=False),
                questionary.Choice("Yes, delete it", value=True),
            ],
            style=questionary.Style(
                [
                    ("question", "bold"),
                    ("highlighted", "fg:red bold"),
                    ("selected", "fg:red"),
                ]
            ),
        ).ask()

        if not answer:
            console.print("[dim]Cancelled[/dim]")
            return False

    errors: list[str] = []
    indexer = CodebaseIndexer(repo_root, config=config)
    try:
        indexer.clear_cache()
    except OSError as e:
        errors.append(f"Failed to remove the index: {e}")
        console.print(f"  [red]✗[/red] Failed to remove the index: {e}")
    finally:
        indexer.close()

    for target in targets:
        try:
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink(missing_ok=True)
            console.print(f"  [green]✓[/green] Removed {target}")
        except OSError as e:
            errors.append(f"Failed to remove {target}: {e}")
            console.print(f"  [red]✗[/red] Failed to remove {target}: {e}")

    if errors:
        return False

    console.print("\n[green]Index cleared[/green]")
    return True


@click.command()
@click.argument("path", default=None, required=False, type=click.Path(exists=True, path_type=Path))
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.option("--cache", "include_cache", is_flag=True, help="Also delete the result cache")
@handle_errors
def clear_command(path: Path | None, yes: bool, include_cache: bool) -> None:
    """Remove the persisted index of a repository.

    PATH is the repository root. If not specified, auto-detects by walking
    up from the current directory to find the git root.
    """
    repo_root = find_repo_root(path)

    if not clear_repo(repo_root, yes=yes, include_cache=include_cache):
        if not yes:
            return
        raise click.ClickException("Failed to clear index")
