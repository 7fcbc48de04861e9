"""CodeRecall CLI - crl command."""

import click

from coderecall.cli.cache import cache_group
from coderecall.cli.clear import clear_command
from coderecall.cli.context import context_group
from coderecall.cli.index import index_command
from coderecall.cli.search import search_group
from coderecall.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="crl")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """CodeRecall - Codebase index, dependency-aware cache and context builder."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(index_command, name="index")
cli.add_command(search_group, name="search")
cli.add_command(context_group, name="context")
cli.add_command(cache_group, name="cache")
cli.add_command(clear_command, name="clear")


if __name__ == "__main__":
    cli()
