"""Directories the indexer skips without reading any ignore file.

``HARDCODED_DIRS`` are never entered. ``DEFAULT_PRUNABLE_DIRS`` are skipped
unless a ``.crignore`` re-includes them with a negated pattern such as
``!vendor/``.
"""

from __future__ import annotations

HARDCODED_DIRS: frozenset[str] = frozenset({".git", ".hg", ".svn", ".bzr", ".coderecall"})

_DEPENDENCY_DIRS = {
    "node_modules", "bower_components", ".npm", ".yarn", ".pnpm-store",
    "venv", ".venv", "env", ".env", "site-packages", ".eggs", "vendor",
}
_CACHE_DIRS = {
    "__pycache__", ".pytest_cache", ".mypy_cache", ".ruff_cache", ".tox", ".nox",
    ".ipynb_checkpoints", ".cache", ".gradle", ".next", ".nuxt", ".turbo",
}
_OUTPUT_DIRS = {
    "dist", "build", "out", "target", "bin", "obj",
    "coverage", "htmlcov", ".nyc_output", "tmp", "temp",
}
_EDITOR_DIRS = {".idea", ".vscode", ".vs"}

DEFAULT_PRUNABLE_DIRS: frozenset[str] = frozenset(
    _DEPENDENCY_DIRS | _CACHE_DIRS | _OUTPUT_DIRS | _EDITOR_DIRS
)

PRUNABLE_DIRS: frozenset[str] = HARDCODED_DIRS | DEFAULT_PRUNABLE_DIRS


def is_hardcoded_dir(dirname: str) -> bool:
    return dirname in HARDCODED_DIRS


__all__ = ["HARDCODED_DIRS", "DEFAULT_PRUNABLE_DIRS", "PRUNABLE_DIRS", "is_hardcoded_dir"]
