"""Tree-sitter language collaborators.

One parser per language, all producing the same ``ParsedFile`` shape:

- PythonParser      .py .pyi
- JavaScriptParser  .js .jsx .mjs .cjs
- TypeScriptParser  .ts .mts .cts
- TsxParser         .tsx
- GoParser          .go

Grammars are loaded lazily from their PyPI packages and cached per process.
Tree-sitter recovers from syntax errors, so a broken file still yields every
declaration it could read; ``ParsedFile.error_count`` records the damage.
"""

from __future__ import annotations

import importlib
import inspect
import threading
from abc import abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import tree_sitter

from coderecall.core.errors import ParseError
from coderecall.index._internal.parsing.base import (
    LanguageParser,
    ParsedClass,
    ParsedFile,
    ParsedFunction,
    ParsedSymbol,
)


@dataclass(frozen=True)
class GrammarSpec:
    """Where a tree-sitter grammar lives."""

    name: str  # grammar key ("python", "tsx", ...)
    module: str  # Python import ("tree_sitter_python")
    language_func: str = "language"  # "language_typescript" for the TS package


_LANGUAGES: dict[str, tree_sitter.Language] = {}
_LANGUAGES_LOCK = threading.Lock()


def load_language(grammar: GrammarSpec) -> tree_sitter.Language:
    """Get or load a tree-sitter Language.

    Raises:
        ParseError: the grammar package is not installed.
    """
    with _LANGUAGES_LOCK:
        lang = _LANGUAGES.get(grammar.name)
        if lang is not None:
            return lang
        try:
            module = importlib.import_module(grammar.module)
            lang_fn = getattr(module, grammar.language_func)
        except (ImportError, AttributeError) as err:
            raise ParseError.grammar_unavailable(grammar.name, grammar.module) from err
        lang = tree_sitter.Language(lang_fn())
        _LANGUAGES[grammar.name] = lang
        return lang


class _Source:
    """Source bytes plus line table for slicing nodes."""

    def __init__(self, text: str) -> None:
        self.data = text.encode("utf-8")
        self.lines = [line.rstrip("\r") for line in text.split("\n")]

    def text(self, node: Any | None) -> str:
        if node is None:
            return ""
        return self.data[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def span(self, node: Any) -> tuple[int, int]:
        """1-based inclusive line span."""
        return node.start_point[0] + 1, node.end_point[0] + 1

    def lines_of(self, node: Any) -> str:
        """Full lines covered by ``node`` (never starts or ends mid-line)."""
        start, end = self.span(node)
        return "\n".join(self.lines[start - 1 : end])


def _walk(node: Any) -> Iterator[Any]:
    """Pre-order traversal without recursion."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def _count_errors(root: Any) -> int:
    if not root.has_error:
        return 0
    return sum(1 for node in _walk(root) if node.type == "ERROR" or node.is_missing)


def _first_of_type(node: Any, types: frozenset[str]) -> Any | None:
    for descendant in _walk(node):
        if descendant.type in types:
            return descendant
    return None


def _clean_block_comment(raw: str) -> str:
    body = raw.strip()
    if body.startswith("/**"):
        body = body[3:]
    elif body.startswith("/*"):
        body = body[2:]
    if body.endswith("*/"):
        body = body[:-2]
    lines = [line.strip().removeprefix("*").strip() for line in body.splitlines()]
    return "\n".join(line for line in lines if line).strip()


class TreeSitterParser(LanguageParser):
    """Shared tree-sitter machinery. Subclasses implement ``_extract``."""

    grammar: GrammarSpec
    branch_types: frozenset[str] = frozenset()
    logical_operators: frozenset[str] = frozenset({"&&", "||", "??"})
    call_types: frozenset[str] = frozenset({"call_expression"})
    identifier_types: frozenset[str] = frozenset({"identifier"})

    def parse(self, path: str, text: str) -> ParsedFile:
        lang = load_language(self.grammar)
        parser = tree_sitter.Parser()
        parser.language = lang
        src = _Source(text)
        tree = parser.parse(src.data)
        root = tree.root_node
        parsed = ParsedFile(path=path, language=self.language, error_count=_count_errors(root))
        self._extract(root, src, parsed)
        return parsed

    @abstractmethod
    def _extract(self, root: Any, src: _Source, parsed: ParsedFile) -> None:
        """Fill ``parsed`` from the syntax tree rooted at ``root``."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _complexity(self, node: Any, src: _Source) -> int:
        """1 + branch points (conditionals, loops, cases, catches, && / ||)."""
        score = 1
        for descendant in _walk(node):
            if descendant.type in self.branch_types:
                score += 1
            elif descendant.type == "binary_expression":
                operator = descendant.child_by_field_name("operator")
                if operator is not None and src.text(operator) in self.logical_operators:
                    score += 1
        return score

    def _callee_name(self, fn_node: Any, src: _Source) -> str | None:
        if fn_node is None:
            return None
        if fn_node.type in self.identifier_types:
            return src.text(fn_node)
        for field_name in ("attribute", "property", "field"):
            member = fn_node.child_by_field_name(field_name)
            if member is not None:
                return src.text(member)
        return None

    def _calls(self, node: Any, src: _Source) -> list[str]:
        seen: dict[str, None] = {}
        for descendant in _walk(node):
            if descendant.type in self.call_types:
                name = self._callee_name(descendant.child_by_field_name("function"), src)
                if name:
                    seen.setdefault(name, None)
        return list(seen)

    def _parameters(self, params: Any | None, src: _Source) -> list[str]:
        names: list[str] = []
        if params is None:
            return names
        if params.type in self.identifier_types:
            return [src.text(params)]
        for child in params.named_children:
            if child.type == "comment":
                continue
            if child.type in self.identifier_types:
                names.append(src.text(child))
                continue
            target = (
                child.child_by_field_name("name")
                or child.child_by_field_name("pattern")
                or child.child_by_field_name("left")
            )
            if target is None or target.type not in self.identifier_types:
                target = _first_of_type(child, self.identifier_types)
            if target is not None:
                names.append(src.text(target))
        return names

    def _leading_comment(self, node: Any, src: _Source, *, prefix: str) -> str | None:
        """Comment block ending on the line right above ``node``."""
        comments: list[str] = []
        expected_end = node.start_point[0] - 1
        prev = node.prev_named_sibling
        while prev is not None and prev.type == "comment" and prev.end_point[0] == expected_end:
            raw = src.text(prev)
            if not raw.startswith(prefix):
                break
            comments.insert(0, raw)
            expected_end = prev.start_point[0] - 1
            prev = prev.prev_named_sibling
        if not comments:
            return None
        if prefix.startswith("/*"):
            return _clean_block_comment(comments[-1]) or None
        text = "\n".join(c.removeprefix(prefix).strip() for c in comments).strip()
        return text or None

    @staticmethod
    def _is_async(node: Any) -> bool:
        return any(child.type == "async" for child in node.children)


# ======================================================================
# Python
# ======================================================================


class PythonParser(TreeSitterParser):
    language = "python"
    extensions = frozenset({".py", ".pyi"})
    grammar = GrammarSpec("python", "tree_sitter_python")
    branch_types = frozenset(
        {
            "if_statement",
            "elif_clause",
            "for_statement",
            "while_statement",
            "except_clause",
            "conditional_expression",
            "boolean_operator",
            "case_clause",
            "for_in_clause",
            "if_clause",
        }
    )
    call_types = frozenset({"call"})

    def _extract(self, root: Any, src: _Source, parsed: ParsedFile) -> None:
        for node in root.named_children:
            inner = node
            if node.type == "decorated_definition":
                inner = node.child_by_field_name("definition") or node
            if inner.type == "function_definition":
                parsed.functions.append(self._function(node, inner, src))
            elif inner.type == "class_definition":
                parsed.classes.append(self._class(node, inner, src))
            elif node.type in ("import_statement", "import_from_statement"):
                parsed.imports.extend(self._imports(node, src))
            elif node.type == "expression_statement":
                symbol = self._constant(node, src)
                if symbol is not None:
                    parsed.symbols.append(symbol)

        parsed.exports = [
            name
            for name in [f.name for f in parsed.functions] + [c.name for c in parsed.classes]
            if not name.startswith("_")
        ]

    def _function(
        self, outer: Any, inner: Any, src: _Source, parent: str | None = None
    ) -> ParsedFunction:
        name = src.text(inner.child_by_field_name("name"))
        start, end = src.span(outer)
        return ParsedFunction(
            name=name,
            start_line=start,
            end_line=end,
            content=src.lines_of(outer),
            parameters=[
                p for p in self._parameters(inner.child_by_field_name("parameters"), src)
                if p not in ("self", "cls")
            ],
            is_async=self._is_async(inner),
            is_exported=not name.startswith("_"),
            docstring=self._docstring(inner.child_by_field_name("body"), src),
            calls=self._calls(inner, src),
            complexity=self._complexity(inner, src),
            parent=parent,
        )

    def _class(self, outer: Any, inner: Any, src: _Source) -> ParsedClass:
        name = src.text(inner.child_by_field_name("name"))
        start, end = src.span(outer)
        bases: list[str] = []
        superclasses = inner.child_by_field_name("superclasses")
        if superclasses is not None:
            bases = [
                src.text(c) for c in superclasses.named_children if c.type != "keyword_argument"
            ]
        body = inner.child_by_field_name("body")
        methods: list[ParsedFunction] = []
        if body is not None:
            for member in body.named_children:
                member_inner = member
                if member.type == "decorated_definition":
                    member_inner = member.child_by_field_name("definition") or member
                if member_inner.type == "function_definition":
                    methods.append(self._function(member, member_inner, src, parent=name))
        return ParsedClass(
            name=name,
            start_line=start,
            end_line=end,
            content=src.lines_of(outer),
            bases=bases,
            methods=methods,
            is_exported=not name.startswith("_"),
            docstring=self._docstring(body, src),
        )

    def _docstring(self, body: Any | None, src: _Source) -> str | None:
        if body is None or not body.named_children:
            return None
        first = body.named_children[0]
        if first.type != "expression_statement" or not first.named_children:
            return None
        string = first.named_children[0]
        if string.type != "string":
            return None
        raw = src.text(string).lstrip("rRuUbBfF")
        for quote in ('"""', "'''", '"', "'"):
            if raw.startswith(quote) and raw.endswith(quote) and len(raw) >= 2 * len(quote):
                raw = raw[len(quote) : -len(quote)]
                break
        return inspect.cleandoc(raw) or None

    def _imports(self, node: Any, src: _Source) -> list[str]:
        if node.type == "import_from_statement":
            module = node.child_by_field_name("module_name")
            return [src.text(module)] if module is not None else []
        modules: list[str] = []
        for name_node in node.children_by_field_name("name"):
            if name_node.type == "aliased_import":
                name_node = name_node.child_by_field_name("name")
            if name_node is not None:
                modules.append(src.text(name_node))
        return modules

    def _constant(self, node: Any, src: _Source) -> ParsedSymbol | None:
        """Module-level UPPER_CASE assignments."""
        if not node.named_children or node.named_children[0].type != "assignment":
            return None
        left = node.named_children[0].child_by_field_name("left")
        if left is None or left.type != "identifier":
            return None
        name = src.text(left)
        if not name.isupper():
            return None
        start, end = src.span(node)
        return ParsedSymbol(
            name=name,
            symbol_type="constant",
            start_line=start,
            end_line=end,
            content=src.lines_of(node),
            is_exported=not name.startswith("_"),
        )


# ======================================================================
# JavaScript / TypeScript
# ======================================================================


class JavaScriptParser(TreeSitterParser):
    language = "javascript"
    extensions = frozenset({".js", ".jsx", ".mjs", ".cjs"})
    grammar = GrammarSpec("javascript", "tree_sitter_javascript")
    branch_types = frozenset(
        {
            "if_statement",
            "for_statement",
            "for_in_statement",
            "while_statement",
            "do_statement",
            "switch_case",
            "catch_clause",
            "ternary_expression",
        }
    )
    identifier_types = frozenset({"identifier", "property_identifier", "type_identifier"})
    _function_values = frozenset({"arrow_function", "function_expression", "function"})
    _symbol_types: dict[str, str] = {}

    def _extract(self, root: Any, src: _Source, parsed: ParsedFile) -> None:
        for node in root.named_children:
            self._declaration(node, node, src, parsed, exported=False)

    def _declaration(
        self, node: Any, outer: Any, src: _Source, parsed: ParsedFile, *, exported: bool
    ) -> None:
        kind = node.type
        if kind == "export_statement":
            declaration = node.child_by_field_name("declaration")
            if declaration is not None:
                self._declaration(declaration, node, src, parsed, exported=True)
            else:
                parsed.exports.extend(self._export_clause(node, src))
            return

        if kind in ("function_declaration", "generator_function_declaration"):
            name = src.text(node.child_by_field_name("name"))
            parsed.functions.append(self._function(outer, node, src, name=name, exported=exported))
            self._export(parsed, name, exported)
        elif kind in ("class_declaration", "abstract_class_declaration"):
            cls = self._class(outer, node, src, exported=exported)
            parsed.classes.append(cls)
            self._export(parsed, cls.name, exported)
        elif kind in ("lexical_declaration", "variable_declaration"):
            self._variables(node, outer, src, parsed, exported=exported)
        elif kind == "import_statement":
            source = node.child_by_field_name("source")
            if source is not None:
                parsed.imports.append(src.text(source).strip("'\"`"))
        elif kind in self._symbol_types:
            name = src.text(node.child_by_field_name("name"))
            start, end = src.span(outer)
            parsed.symbols.append(
                ParsedSymbol(
                    name=name,
                    symbol_type=self._symbol_types[kind],
                    start_line=start,
                    end_line=end,
                    content=src.lines_of(outer),
                    is_exported=exported,
                    docstring=self._leading_comment(outer, src, prefix="/**"),
                )
            )
            self._export(parsed, name, exported)

    @staticmethod
    def _export(parsed: ParsedFile, name: str, exported: bool) -> None:
        if exported and name and name not in parsed.exports:
            parsed.exports.append(name)

    def _export_clause(self, node: Any, src: _Source) -> list[str]:
        names: list[str] = []
        for descendant in _walk(node):
            if descendant.type == "export_specifier":
                alias = descendant.child_by_field_name("alias")
                target = alias or descendant.child_by_field_name("name")
                if target is not None:
                    names.append(src.text(target))
        return names

    def _variables(
        self, node: Any, outer: Any, src: _Source, parsed: ParsedFile, *, exported: bool
    ) -> None:
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            if name_node is None or name_node.type != "identifier":
                continue
            name = src.text(name_node)
            value = declarator.child_by_field_name("value")
            if value is not None and value.type in self._function_values:
                parsed.functions.append(
                    self._function(outer, value, src, name=name, exported=exported)
                )
                self._export(parsed, name, exported)
            elif exported:
                start, end = src.span(outer)
                parsed.symbols.append(
                    ParsedSymbol(
                        name=name,
                        symbol_type="variable",
                        start_line=start,
                        end_line=end,
                        content=src.lines_of(outer),
                        is_exported=True,
                        docstring=self._leading_comment(outer, src, prefix="/**"),
                    )
                )
                self._export(parsed, name, exported)

    def _function(
        self,
        outer: Any,
        node: Any,
        src: _Source,
        *,
        name: str,
        exported: bool,
        parent: str | None = None,
    ) -> ParsedFunction:
        start, end = src.span(outer)
        params = node.child_by_field_name("parameters") or node.child_by_field_name("parameter")
        return ParsedFunction(
            name=name,
            start_line=start,
            end_line=end,
            content=src.lines_of(outer),
            parameters=self._parameters(params, src),
            is_async=self._is_async(node),
            is_exported=exported,
            docstring=self._leading_comment(outer, src, prefix="/**"),
            calls=self._calls(node, src),
            complexity=self._complexity(node, src),
            parent=parent,
        )

    def _class(self, outer: Any, node: Any, src: _Source, *, exported: bool) -> ParsedClass:
        name = src.text(node.child_by_field_name("name"))
        start, end = src.span(outer)
        bases: list[str] = []
        for child in node.children:
            if child.type == "class_heritage":
                bases.extend(
                    src.text(d)
                    for d in _walk(child)
                    if d.type in ("identifier", "type_identifier")
                )
        methods: list[ParsedFunction] = []
        body = node.child_by_field_name("body")
        if body is not None:
            for member in body.named_children:
                if member.type != "method_definition":
                    continue
                method_name = src.text(member.child_by_field_name("name"))
                methods.append(
                    self._function(
                        member, member, src, name=method_name, exported=exported, parent=name
                    )
                )
        return ParsedClass(
            name=name,
            start_line=start,
            end_line=end,
            content=src.lines_of(outer),
            bases=bases,
            methods=methods,
            is_exported=exported,
            docstring=self._leading_comment(outer, src, prefix="/**"),
        )


class TypeScriptParser(JavaScriptParser):
    language = "typescript"
    extensions = frozenset({".ts", ".mts", ".cts"})
    grammar = GrammarSpec("typescript", "tree_sitter_typescript", "language_typescript")
    _symbol_types = {
        "interface_declaration": "interface",
        "type_alias_declaration": "type",
        "enum_declaration": "enum",
    }


class TsxParser(TypeScriptParser):
    extensions = frozenset({".tsx"})
    grammar = GrammarSpec("tsx", "tree_sitter_typescript", "language_tsx")


# ======================================================================
# Go
# ======================================================================


class GoParser(TreeSitterParser):
    """Go: struct types are classes, methods attach to their receiver's struct."""

    language = "go"
    extensions = frozenset({".go"})
    grammar = GrammarSpec("go", "tree_sitter_go")
    branch_types = frozenset(
        {
            "if_statement",
            "for_statement",
            "expression_case",
            "type_case",
            "communication_case",
        }
    )
    logical_operators = frozenset({"&&", "||"})
    identifier_types = frozenset({"identifier", "field_identifier", "type_identifier"})

    def _extract(self, root: Any, src: _Source, parsed: ParsedFile) -> None:
        structs: dict[str, ParsedClass] = {}
        methods: list[ParsedFunction] = []

        for node in root.named_children:
            if node.type == "function_declaration":
                parsed.functions.append(self._function(node, src))
            elif node.type == "method_declaration":
                receiver = _first_of_type(
                    node.child_by_field_name("receiver") or node, frozenset({"type_identifier"})
                )
                methods.append(self._function(node, src, parent=src.text(receiver) or None))
            elif node.type == "type_declaration":
                specs = [c for c in node.named_children if c.type == "type_spec"]
                for spec in specs:
                    outer = node if len(specs) == 1 else spec
                    self._type_spec(spec, outer, src, parsed, structs)
            elif node.type == "import_declaration":
                for spec in _walk(node):
                    if spec.type == "import_spec":
                        path = spec.child_by_field_name("path")
                        if path is not None:
                            parsed.imports.append(src.text(path).strip('"`'))

        for method in methods:
            owner = structs.get(method.parent or "")
            if owner is not None:
                owner.methods.append(method)
            else:
                # Receiver declared in another file of the package.
                parsed.functions.append(method)

        names = [f.name for f in parsed.functions if f.parent is None]
        names += [c.name for c in parsed.classes] + [s.name for s in parsed.symbols]
        parsed.exports = [n for n in names if n[:1].isupper()]

    def _type_spec(
        self,
        spec: Any,
        outer: Any,
        src: _Source,
        parsed: ParsedFile,
        structs: dict[str, ParsedClass],
    ) -> None:
        name = src.text(spec.child_by_field_name("name"))
        type_node = spec.child_by_field_name("type")
        start, end = src.span(outer)
        doc = self._leading_comment(outer, src, prefix="//")
        if type_node is not None and type_node.type == "struct_type":
            cls = ParsedClass(
                name=name,
                start_line=start,
                end_line=end,
                content=src.lines_of(outer),
                is_exported=name[:1].isupper(),
                docstring=doc,
            )
            structs[name] = cls
            parsed.classes.append(cls)
            return
        symbol_type = "interface" if type_node is not None and type_node.type == "interface_type" else "type"
        parsed.symbols.append(
            ParsedSymbol(
                name=name,
                symbol_type=symbol_type,
                start_line=start,
                end_line=end,
                content=src.lines_of(outer),
                is_exported=name[:1].isupper(),
                docstring=doc,
            )
        )

    def _function(self, node: Any, src: _Source, parent: str | None = None) -> ParsedFunction:
        name = src.text(node.child_by_field_name("name"))
        start, end = src.span(node)
        return ParsedFunction(
            name=name,
            start_line=start,
            end_line=end,
            content=src.lines_of(node),
            parameters=self._parameters(node.child_by_field_name("parameters"), src),
            is_exported=name[:1].isupper(),
            docstring=self._leading_comment(node, src, prefix="//"),
            calls=self._calls(node, src),
            complexity=self._complexity(node, src),
            parent=parent,
        )
