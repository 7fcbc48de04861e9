"""ParsedFile → EmbeddableUnit derivation.

One file unit per file, one function unit per function or method (methods
are named ``Class.method``), one class unit per class and one symbol unit
per other top-level declaration. Everything here is a pure function of the
parse result and the file text, so re-parsing unchanged content always
yields equal units.
"""

from __future__ import annotations

from coderecall.config.constants import SUMMARY_MAX_CHARS
from coderecall.embedding import derive_unit_id, hash_content
from coderecall.index._internal.parsing import ParsedClass, ParsedFile, ParsedFunction
from coderecall.index.models import EmbeddableUnit, UnitKind, UnitMetadata

_NAME_TAGS: list[tuple[tuple[str, ...], str]] = [
    (("auth", "login"), "authentication"),
    (("db", "database", "query", "repository"), "database"),
    (("api", "fetch", "request", "endpoint"), "api"),
    (("test", "spec"), "test"),
    (("util", "helper"), "utility"),
    (("validate", "check"), "validation"),
    (("encrypt", "decrypt", "hash", "token"), "security"),
    (("parse", "format"), "parsing"),
    (("service",), "service"),
    (("controller",), "controller"),
    (("model",), "model"),
    (("manager",), "manager"),
    (("provider",), "provider"),
    (("handler",), "handler"),
]

_PATH_TAGS: list[tuple[tuple[str, ...], str]] = [
    (("test",), "test"),
    (("config",), "configuration"),
    (("util",), "utility"),
    (("types", ".d.ts"), "types"),
    (("constant",), "constants"),
]

_DOC_TYPES: list[tuple[str, str]] = [
    ("readme", "readme"),
    ("contributing", "contributing"),
    ("architecture", "architecture"),
    ("changelog", "changelog"),
    ("api", "api"),
]

DOC_LANGUAGES = frozenset({"markdown", "restructuredtext", "text"})


def summarize(content: str, docstring: str | None = None) -> str:
    """Docstring first line, else the first non-blank content line."""
    candidates = [docstring.strip().splitlines()[0]] if docstring and docstring.strip() else []
    candidates.extend(line.strip() for line in content.splitlines() if line.strip())
    first = candidates[0] if candidates else ""
    if len(first) > SUMMARY_MAX_CHARS:
        return first[:SUMMARY_MAX_CHARS] + "..."
    return first


def name_tags(name: str) -> list[str]:
    lowered = name.lower()
    return [tag for needles, tag in _NAME_TAGS if any(n in lowered for n in needles)]


def complexity_tags(complexity: int, *, is_async: bool = False) -> list[str]:
    tags: list[str] = []
    if complexity > 10:
        tags.append("complex")
    elif complexity <= 3:
        tags.append("simple")
    if is_async:
        tags.append("async")
    return tags


def file_tags(path: str, language: str) -> list[str]:
    lowered = path.lower()
    if language in DOC_LANGUAGES:
        name = lowered.rsplit("/", 1)[-1]
        doc_type = next((t for needle, t in _DOC_TYPES if needle in name), "general")
        return ["documentation", doc_type]
    return [tag for needles, tag in _PATH_TAGS if any(n in lowered for n in needles)]


def _dedupe(tags: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(tags))


class _IdAllocator:
    """Unique ids within one file; a repeated (kind, name) gets ``name#2``, ``name#3``..."""

    def __init__(self, source: str) -> None:
        self._source = source
        self._seen: dict[tuple[UnitKind, str | None], int] = {}

    def allocate(self, kind: UnitKind, name: str | None) -> str:
        count = self._seen.get((kind, name), 0) + 1
        self._seen[(kind, name)] = count
        symbol = name if count == 1 or name is None else f"{name}#{count}"
        return derive_unit_id(kind.value, self._source, symbol)


def derive_units(
    parsed: ParsedFile, text: str, *, last_modified: float = 0.0
) -> list[EmbeddableUnit]:
    """All units of one parsed file, file unit first, then in source order."""
    source = parsed.path
    ids = _IdAllocator(source)
    lines = text.split("\n")
    units: list[EmbeddableUnit] = []

    file_deps = frozenset(parsed.imports)
    units.append(
        EmbeddableUnit(
            id=ids.allocate(UnitKind.FILE, None),
            kind=UnitKind.FILE,
            source=source,
            start_line=1,
            end_line=max(1, len(lines)),
            content=text,
            summary=summarize(text, parsed.headings[0] if parsed.headings else None),
            hash=hash_content(text),
            metadata=UnitMetadata(
                language=parsed.language,
                dependencies=file_deps,
                exports=tuple(parsed.exports),
                tags=_dedupe(file_tags(source, parsed.language)),
                last_modified=last_modified,
            ),
        )
    )

    body: list[tuple[int, EmbeddableUnit]] = []
    for fn in parsed.all_functions():
        body.append((fn.start_line, _function_unit(fn, source, parsed.language, ids, last_modified)))
    for cls in parsed.classes:
        body.append((cls.start_line, _class_unit(cls, source, parsed.language, ids, last_modified)))
    for sym in parsed.symbols:
        metadata = UnitMetadata(
            symbol_name=sym.name,
            language=parsed.language,
            exports=(sym.name,) if sym.is_exported else (),
            tags=_dedupe([*name_tags(sym.name), sym.symbol_type]),
            last_modified=last_modified,
        )
        body.append(
            (
                sym.start_line,
                EmbeddableUnit(
                    id=ids.allocate(UnitKind.SYMBOL, sym.name),
                    kind=UnitKind.SYMBOL,
                    source=source,
                    start_line=sym.start_line,
                    end_line=sym.end_line,
                    content=sym.content,
                    summary=summarize(sym.content, sym.docstring),
                    hash=hash_content(sym.content),
                    metadata=metadata,
                ),
            )
        )

    body.sort(key=lambda item: item[0])
    units.extend(unit for _, unit in body)
    return units


def _function_unit(
    fn: ParsedFunction, source: str, language: str, ids: _IdAllocator, last_modified: float
) -> EmbeddableUnit:
    name = fn.qualified_name
    return EmbeddableUnit(
        id=ids.allocate(UnitKind.FUNCTION, name),
        kind=UnitKind.FUNCTION,
        source=source,
        start_line=fn.start_line,
        end_line=fn.end_line,
        content=fn.content,
        summary=summarize(fn.content, fn.docstring),
        hash=hash_content(fn.content),
        metadata=UnitMetadata(
            symbol_name=name,
            language=language,
            complexity=fn.complexity,
            dependencies=frozenset(c for c in fn.calls if c != fn.name),
            exports=(name,) if fn.is_exported else (),
            tags=_dedupe(
                [*name_tags(fn.name), *complexity_tags(fn.complexity, is_async=fn.is_async)]
            ),
            last_modified=last_modified,
        ),
    )


def _class_unit(
    cls: ParsedClass, source: str, language: str, ids: _IdAllocator, last_modified: float
) -> EmbeddableUnit:
    complexity = sum(m.complexity for m in cls.methods)
    calls = {c for m in cls.methods for c in m.calls}
    return EmbeddableUnit(
        id=ids.allocate(UnitKind.CLASS, cls.name),
        kind=UnitKind.CLASS,
        source=source,
        start_line=cls.start_line,
        end_line=cls.end_line,
        content=cls.content,
        summary=summarize(cls.content, cls.docstring),
        hash=hash_content(cls.content),
        metadata=UnitMetadata(
            symbol_name=cls.name,
            language=language,
            complexity=complexity,
            dependencies=frozenset(cls.bases) | frozenset(calls),
            exports=(cls.name,) if cls.is_exported else (),
            tags=_dedupe(name_tags(cls.name)),
            last_modified=last_modified,
        ),
    )


def embedding_text(unit: EmbeddableUnit, max_chars: int) -> str:
    """Text sent to the provider: a short header plus the (clipped) content."""
    header = [f"// File: {unit.source}"]
    if unit.kind is UnitKind.FUNCTION:
        header.append(f"// Function: {unit.name}")
    elif unit.kind is UnitKind.CLASS:
        header.append(f"// Class: {unit.name}")
    elif unit.kind is UnitKind.SYMBOL:
        header.append(f"// Symbol: {unit.name}")
    if unit.summary:
        header.append(f"// Summary: {unit.summary}")
    body = unit.content
    if len(body) > max_chars:
        body = body[:max_chars] + "\n// ... (truncated)"
    return "\n".join([*header, body])
