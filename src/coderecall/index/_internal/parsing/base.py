"""Uniform parse result shared by every language collaborator.

The indexer only ever sees ``ParsedFile``; each language plugs in through
``LanguageParser`` and is chosen by file extension.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class ParsedFunction:
    """A function or method."""

    name: str
    start_line: int  # 1-based, inclusive
    end_line: int
    content: str
    parameters: list[str] = field(default_factory=list)
    is_async: bool = False
    is_exported: bool = False
    docstring: str | None = None
    calls: list[str] = field(default_factory=list)  # callee names, first-seen order
    complexity: int = 1
    parent: str | None = None  # owning class for methods

    @property
    def qualified_name(self) -> str:
        return f"{self.parent}.{self.name}" if self.parent else self.name


@dataclass
class ParsedClass:
    """A class (or Go struct) with its methods."""

    name: str
    start_line: int
    end_line: int
    content: str
    bases: list[str] = field(default_factory=list)
    methods: list[ParsedFunction] = field(default_factory=list)
    is_exported: bool = False
    docstring: str | None = None


@dataclass
class ParsedSymbol:
    """Any other named top-level declaration worth indexing."""

    name: str
    symbol_type: str  # interface, type, enum, variable, constant
    start_line: int
    end_line: int
    content: str
    is_exported: bool = False
    docstring: str | None = None


@dataclass
class ParsedFile:
    """Best-effort parse of one file. ``error_count > 0`` means partial."""

    path: str
    language: str
    functions: list[ParsedFunction] = field(default_factory=list)
    classes: list[ParsedClass] = field(default_factory=list)
    symbols: list[ParsedSymbol] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)
    headings: list[str] = field(default_factory=list)
    error_count: int = 0

    @property
    def partial(self) -> bool:
        return self.error_count > 0

    def all_functions(self) -> list[ParsedFunction]:
        """Top-level functions followed by every class method."""
        methods = [m for cls in self.classes for m in cls.methods]
        return [*self.functions, *methods]


class LanguageParser(ABC):
    """Capability implemented once per source language."""

    language: str = ""
    extensions: frozenset[str] = frozenset()

    @abstractmethod
    def parse(self, path: str, text: str) -> ParsedFile:
        """Parse ``text`` (the content of repo-relative ``path``).

        Must not raise on syntax errors: return what could be recovered and
        count the errors. Raises ParseError only when the language itself is
        unusable (e.g. the grammar is not installed).
        """
