"""crl context commands - print a token-budgeted context."""

from pathlib import Path

import click

from coderecall.cli.utils import handle_errors, open_workspace
from coderecall.context import ContextBuilder, RetrievalContext
from coderecall.core.progress import status

_path_option = click.option(
    "--path",
    "path",
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Repository root (default: the enclosing repository)",
)
_max_tokens_option = click.option("--max-tokens", type=int, default=None, help="Token budget")


def _emit(context: RetrievalContext, question: str | None, builder: ContextBuilder) -> None:
    text = builder.format_prompt(context, question) if question else context.content
    click.echo(text)
    note = f"{context.token_count} tokens from {len(context.sources)} units"
    status(note + (" (truncated)" if context.truncated else ""), style="info")


@click.group()
def context_group() -> None:
    """Assemble retrieval contexts."""


@context_group.command("function")
@click.argument("name")
@_max_tokens_option
@click.option("--deps/--no-deps", default=True, help="Include units the function depends on")
@click.option("--tests", is_flag=True, help="Include test units mentioning the function")
@click.option("--question", default=None, help="Wrap the context in a prompt for QUESTION")
@_path_option
@handle_errors
def context_function(
    name: str,
    max_tokens: int | None,
    deps: bool,
    tests: bool,
    question: str | None,
    path: Path | None,
) -> None:
    """Context around the function NAME."""
    with open_workspace(path, with_provider=False) as ws:
        builder = ContextBuilder(ws.indexer, config=ws.config)
        options = builder.default_options(
            max_tokens=max_tokens, include_dependencies=deps, include_tests=tests
        )
        _emit(builder.build_function_context(name, options), question, builder)


@context_group.command("theme")
@click.argument("theme")
@_max_tokens_option
@click.option("--question", default=None, help="Wrap the context in a prompt for QUESTION")
@_path_option
@handle_errors
def context_theme(theme: str, max_tokens: int | None, question: str | None, path: Path | None) -> None:
    """Context of the units most related to THEME."""
    with open_workspace(path) as ws:
        builder = ContextBuilder(ws.indexer, ws.provider, config=ws.config)
        options = builder.default_options(max_tokens=max_tokens)
        _emit(builder.build_theme_context(theme, options), question, builder)
