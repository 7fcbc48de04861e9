"""Extension → language collaborator dispatch."""

from __future__ import annotations

from pathlib import PurePosixPath

from coderecall.core.errors import ParseError
from coderecall.index._internal.parsing.base import LanguageParser, ParsedFile
from coderecall.index._internal.parsing.documents import DocumentParser
from coderecall.index._internal.parsing.treesitter import (
    GoParser,
    JavaScriptParser,
    PythonParser,
    TsxParser,
    TypeScriptParser,
)


class ParserRegistry:
    """Maps file extensions to ``LanguageParser`` instances.

    The indexer never special-cases a language: it asks the registry for the
    collaborator owning a path and consumes the uniform ``ParsedFile``.
    """

    def __init__(self, parsers: list[LanguageParser] | None = None) -> None:
        self._by_extension: dict[str, LanguageParser] = {}
        for parser in parsers or []:
            self.register(parser)

    def register(self, parser: LanguageParser) -> None:
        """Register ``parser`` for its extensions; later registrations win."""
        for ext in parser.extensions:
            self._by_extension[ext.lower()] = parser

    def for_path(self, path: str) -> LanguageParser | None:
        return self._by_extension.get(PurePosixPath(path).suffix.lower())

    def supports(self, path: str) -> bool:
        return self.for_path(path) is not None

    @property
    def extensions(self) -> frozenset[str]:
        return frozenset(self._by_extension)

    def parse(self, path: str, text: str) -> ParsedFile:
        """Parse with the owning collaborator.

        Raises:
            ParseError: no collaborator for the extension, or its grammar is missing.
        """
        parser = self.for_path(path)
        if parser is None:
            raise ParseError.unsupported_language(path)
        return parser.parse(path, text)


def default_registry(*, include_docs: bool = True) -> ParserRegistry:
    parsers: list[LanguageParser] = [
        PythonParser(),
        JavaScriptParser(),
        TypeScriptParser(),
        TsxParser(),
        GoParser(),
    ]
    if include_docs:
        parsers.append(DocumentParser())
    return ParserRegistry(parsers)
