"""Path exclusion for index builds.

Tiered:
- HARDCODED_DIRS: always pruned (VCS internals, .coderecall)
- DEFAULT_PRUNABLE_DIRS: pruned unless a root .crignore opts back in with !dir/
- .crignore (and optionally .gitignore) patterns, nested files prefixed with
  their directory, negation with ! prefix
"""

from __future__ import annotations

import fnmatch
from pathlib import Path, PurePosixPath

from coderecall.core.excludes import DEFAULT_PRUNABLE_DIRS, PRUNABLE_DIRS, is_hardcoded_dir

__all__ = ["CRIGNORE_NAME", "IgnoreChecker", "matches_glob"]

CRIGNORE_NAME = ".crignore"


class IgnoreChecker:
    """Decides whether a repo path takes part in indexing."""

    def __init__(
        self,
        root: Path,
        extra_patterns: list[str] | None = None,
        *,
        respect_gitignore: bool = True,
    ) -> None:
        self._root = root
        self._patterns: list[str] = list(DEFAULT_PRUNABLE_DIRS)
        self._negated_dirs: set[str] = set()
        self._load_recursive(CRIGNORE_NAME)
        if respect_gitignore:
            self._load_recursive(".gitignore")
        if extra_patterns:
            self._patterns.extend(extra_patterns)

    @property
    def negated_dirs(self) -> frozenset[str]:
        return frozenset(self._negated_dirs)

    def should_prune_dir(self, dirname: str) -> bool:
        """True if a directory (by name) must not be traversed.

        checker.should_prune_dir(".git")          # True, always
        checker.should_prune_dir("node_modules")  # True unless "!node_modules/"
        """
        if is_hardcoded_dir(dirname):
            return True
        if dirname in DEFAULT_PRUNABLE_DIRS:
            return dirname not in self._negated_dirs
        return False

    def _load_recursive(self, filename: str) -> None:
        for dirpath, dirnames, filenames in self._root.walk():
            dirnames[:] = [d for d in dirnames if d not in PRUNABLE_DIRS]
            if filename not in filenames:
                continue
            prefix = "" if dirpath == self._root else dirpath.relative_to(self._root).as_posix()
            self._load_ignore_file(dirpath / filename, prefix=prefix)

    def _load_ignore_file(self, path: Path, prefix: str = "") -> None:
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return
        for raw in content.splitlines():
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            negated = line.startswith("!")
            if negated:
                line = line[1:]
                # Root-level "!vendor/" re-enables a default-pruned directory
                dir_name = line.rstrip("/")
                if not prefix and dir_name and "/" not in dir_name and "*" not in dir_name:
                    self._negated_dirs.add(dir_name)

            line = line.lstrip("/")
            pattern = f"{line}**" if line.endswith("/") else line
            if prefix:
                pattern = f"{prefix}/{pattern}"
            self._patterns.append(f"!{pattern}" if negated else pattern)

    def should_ignore(self, path: Path) -> bool:
        try:
            rel = path.relative_to(self._root)
        except ValueError:
            return True
        return self.is_excluded_rel(rel.as_posix())

    def is_excluded_rel(self, rel_path: str) -> bool:
        """Last matching pattern wins, like .gitignore."""
        rel_posix = rel_path.replace("\\", "/")
        parents = [p.as_posix() for p in PurePosixPath(rel_posix).parents if str(p) != "."]
        excluded = False
        for pattern in self._patterns:
            if pattern.startswith("!"):
                if fnmatch.fnmatch(rel_posix, pattern[1:]):
                    excluded = False
                continue
            if fnmatch.fnmatch(rel_posix, pattern) or any(
                fnmatch.fnmatch(parent, pattern) for parent in parents
            ):
                excluded = True
        return excluded


def matches_glob(rel_path: str, pattern: str) -> bool:
    """fnmatch with ``**/`` also matching at the root."""
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    if pattern.startswith("**/"):
        return fnmatch.fnmatch(rel_path, pattern[3:])
    return False
