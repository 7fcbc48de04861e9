"""Language collaborators producing a uniform ParsedFile."""

from coderecall.index._internal.parsing.base import (
    LanguageParser,
    ParsedClass,
    ParsedFile,
    ParsedFunction,
    ParsedSymbol,
)
from coderecall.index._internal.parsing.documents import DocumentParser
from coderecall.index._internal.parsing.registry import ParserRegistry, default_registry
from coderecall.index._internal.parsing.treesitter import (
    GoParser,
    JavaScriptParser,
    PythonParser,
    TreeSitterParser,
    TsxParser,
    TypeScriptParser,
)

__all__ = [
    "LanguageParser",
    "ParsedFile",
    "ParsedFunction",
    "ParsedClass",
    "ParsedSymbol",
    "ParserRegistry",
    "default_registry",
    "TreeSitterParser",
    "PythonParser",
    "JavaScriptParser",
    "TypeScriptParser",
    "TsxParser",
    "GoParser",
    "DocumentParser",
]
