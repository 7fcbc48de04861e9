"""CLI utilities."""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import ParamSpec, TypeVar

import click

from coderecall.cache import DependencyAwareCache
from coderecall.config.constants import CACHE_DB_NAME
from coderecall.config.loader import get_repo_data_dir, load_config
from coderecall.config.models import CodeRecallConfig
from coderecall.core.errors import CodeRecallError
from coderecall.core.logging import configure_logging
from coderecall.index import CodebaseIndexer
from coderecall.providers.base import EmbeddingProvider
from coderecall.providers.factory import create_provider

P = ParamSpec("P")
R = TypeVar("R")


def find_repo_root(start_path: Path | None = None) -> Path:
    """Find the repository root from the given path.

    Walks up the directory tree looking for a .git directory. Outside a git
    repository the starting directory itself is the root.

    Args:
        start_path: Starting directory to search from (default: cwd)

    Returns:
        Path to repository root
    """
    start = (start_path or Path.cwd()).resolve()

    current = start
    while current != current.parent:
        if (current / ".git").exists():
            return current
        current = current.parent

    if (current / ".git").exists():
        return current
    return start


def handle_errors(fn: Callable[P, R]) -> Callable[P, R]:
    """Turn CodeRecallError into click.ClickException."""

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return fn(*args, **kwargs)
        except CodeRecallError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


@dataclass
class Workspace:
    """Everything a command needs for one repository."""

    root: Path
    config: CodeRecallConfig
    indexer: CodebaseIndexer
    provider: EmbeddingProvider | None

    def open_cache(self) -> DependencyAwareCache:
        return DependencyAwareCache(
            self.root,
            get_repo_data_dir(self.config, self.root) / CACHE_DB_NAME,
            max_size_mb=self.config.cache.max_size_mb,
        )


@contextmanager
def open_workspace(path: Path | None, *, with_provider: bool = True) -> Iterator[Workspace]:
    """Load config for the repository at ``path`` and open its indexer.

    A logging config that names a file output replaces the console-only
    setup installed by the top-level command.
    """
    root = find_repo_root(path)
    config = load_config(root)
    if any(o.destination not in ("stderr", "stdout") for o in config.logging.outputs):
        configure_logging(config=config.logging)
    provider = create_provider(config.embedding) if with_provider else None
    indexer = CodebaseIndexer(root, provider, config=config)
    try:
        yield Workspace(root=root, config=config, indexer=indexer, provider=provider)
    finally:
        indexer.close()
