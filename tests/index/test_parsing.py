"""Tests for the language collaborators and the parser registry."""

import textwrap

import pytest

from coderecall.core.errors import ParseError
from coderecall.index._internal.parsing import (
    DocumentParser,
    GoParser,
    JavaScriptParser,
    ParserRegistry,
    PythonParser,
    TypeScriptParser,
    default_registry,
)
from coderecall.index._internal.parsing.treesitter import GrammarSpec, TreeSitterParser, load_language

PY_SOURCE = textwrap.dedent(
    '''\
    import os
    from pathlib import Path

    MAX_RETRIES = 3
    helper_value = 4


    def load(path, retries=2):
        """Load a file.

        Retries on failure.
        """
        if not os.path.exists(path):
            return None
        for _ in range(retries):
            data = Path(path).read_text()
            if data and len(data) > 0:
                return data
        return None


    def _private():
        pass


    class Store(Base):
        """Keeps things."""

        def get(self, key):
            return load(key)

        @staticmethod
        def build(cls_name):
            return Store()


    async def fetch():
        return await load("x")
    '''
)


class TestPythonParser:
    """Python extraction."""

    @pytest.fixture
    def parsed(self):
        return PythonParser().parse("pkg/store.py", PY_SOURCE)

    def test_functions_and_methods(self, parsed) -> None:
        names = [f.name for f in parsed.functions]
        assert names == ["load", "_private", "fetch"]

        store = parsed.classes[0]
        assert store.name == "Store"
        assert store.bases == ["Base"]
        assert [m.qualified_name for m in store.methods] == ["Store.get", "Store.build"]

    def test_function_details(self, parsed) -> None:
        load = parsed.functions[0]
        assert load.parameters == ["path", "retries"]
        assert load.docstring == "Load a file.\n\nRetries on failure."
        assert load.start_line == 8
        assert load.content.startswith("def load(path, retries=2):")
        assert "exists" in load.calls
        assert "read_text" in load.calls
        # if + for + if + boolean and
        assert load.complexity == 5

    def test_method_drops_self(self, parsed) -> None:
        get = parsed.classes[0].methods[0]
        assert get.parameters == ["key"]
        assert get.parent == "Store"

    def test_decorated_method_includes_decorator(self, parsed) -> None:
        build = parsed.classes[0].methods[1]
        assert build.content.lstrip().startswith("@staticmethod")

    def test_async_detected(self, parsed) -> None:
        fetch = parsed.functions[2]
        assert fetch.is_async is True
        assert parsed.functions[0].is_async is False

    def test_imports_and_constants(self, parsed) -> None:
        assert parsed.imports == ["os", "pathlib"]
        assert [s.name for s in parsed.symbols] == ["MAX_RETRIES"]
        assert parsed.symbols[0].symbol_type == "constant"

    def test_exports_skip_private(self, parsed) -> None:
        assert parsed.exports == ["load", "fetch", "Store"]
        assert parsed.partial is False

    def test_syntax_errors_give_partial_parse(self) -> None:
        source = "def ok():\n    return 1\n\ndef broken(:\n    pass\n"
        parsed = PythonParser().parse("bad.py", source)
        assert parsed.partial is True
        assert parsed.error_count > 0
        assert "ok" in [f.name for f in parsed.functions]


TS_SOURCE = textwrap.dedent(
    """\
    import { db } from "./db";
    import type { Options } from './options';

    /** Shape of a session. */
    export interface Session {
      id: string;
    }

    export type Id = string;

    export enum Color { Red, Green }

    export const VERSION = "1.0";

    /**
     * Open a session.
     */
    export async function open(id: string, opts?: Options): Promise<Session> {
      const row = await db.lookup(id);
      return row ?? { id };
    }

    export const close = (session: Session) => {
      db.release(session.id);
    };

    export class Manager extends BaseManager {
      start(name: string) {
        if (name && this.ready) {
          return open(name);
        }
      }
    }

    function internal() {}
    """
)


class TestTypeScriptParser:
    """TypeScript extraction."""

    @pytest.fixture
    def parsed(self):
        return TypeScriptParser().parse("src/session.ts", TS_SOURCE)

    def test_imports(self, parsed) -> None:
        assert parsed.imports == ["./db", "./options"]

    def test_functions(self, parsed) -> None:
        by_name = {f.name: f for f in parsed.functions}
        assert set(by_name) == {"open", "close", "internal"}

        open_fn = by_name["open"]
        assert open_fn.is_exported is True
        assert open_fn.is_async is True
        assert open_fn.parameters == ["id", "opts"]
        assert open_fn.docstring == "Open a session."
        assert "lookup" in open_fn.calls
        assert open_fn.content.startswith("export async function open")

        assert by_name["close"].parameters == ["session"]
        assert "release" in by_name["close"].calls
        assert by_name["internal"].is_exported is False

    def test_class_methods(self, parsed) -> None:
        manager = parsed.classes[0]
        assert manager.name == "Manager"
        assert "BaseManager" in manager.bases
        start = manager.methods[0]
        assert start.qualified_name == "Manager.start"
        # if + &&
        assert start.complexity == 3
        assert "open" in start.calls

    def test_symbols(self, parsed) -> None:
        kinds = {s.name: s.symbol_type for s in parsed.symbols}
        assert kinds == {
            "Session": "interface",
            "Id": "type",
            "Color": "enum",
            "VERSION": "variable",
        }
        session = next(s for s in parsed.symbols if s.name == "Session")
        assert session.docstring == "Shape of a session."

    def test_exports(self, parsed) -> None:
        assert set(parsed.exports) == {"Session", "Id", "Color", "VERSION", "open", "close", "Manager"}


class TestJavaScriptParser:
    """Plain JavaScript extraction."""

    def test_export_clause_and_function_expression(self) -> None:
        source = textwrap.dedent(
            """\
            const format = function (value) {
              return String(value);
            };

            function render(items) {
              return items.map(format).join(",");
            }

            export { render, format as fmt };
            """
        )
        parsed = JavaScriptParser().parse("lib/render.js", source)
        assert [f.name for f in parsed.functions] == ["format", "render"]
        assert parsed.exports == ["render", "fmt"]
        assert parsed.symbols == []
        render = parsed.functions[1]
        assert {"map", "join"} <= set(render.calls)


GO_SOURCE = textwrap.dedent(
    """\
    package store

    import (
    \t"fmt"
    \t"strings"
    )

    // Cache holds entries.
    type Cache struct {
    \titems map[string]string
    }

    // Reader reads.
    type Reader interface {
    \tRead(key string) string
    }

    // Get returns an entry.
    func (c *Cache) Get(key string) string {
    \tif v, ok := c.items[key]; ok && v != "" {
    \t\treturn v
    \t}
    \treturn fmt.Sprint(strings.ToLower(key))
    }

    func (o *Other) Close() {}

    func New() *Cache {
    \treturn &Cache{}
    }

    func helper() {}
    """
)


class TestGoParser:
    """Go extraction: structs as classes, methods attached by receiver."""

    @pytest.fixture
    def parsed(self):
        return GoParser().parse("store/cache.go", GO_SOURCE)

    def test_imports(self, parsed) -> None:
        assert parsed.imports == ["fmt", "strings"]

    def test_struct_with_method(self, parsed) -> None:
        cache = parsed.classes[0]
        assert cache.name == "Cache"
        assert cache.docstring == "Cache holds entries."
        get = cache.methods[0]
        assert get.qualified_name == "Cache.Get"
        assert get.parameters == ["key"]
        assert get.docstring == "Get returns an entry."
        assert get.complexity == 3
        assert {"Sprint", "ToLower"} <= set(get.calls)

    def test_foreign_receiver_kept_as_function(self, parsed) -> None:
        names = [f.qualified_name for f in parsed.functions]
        assert "Other.Close" in names
        assert "New" in names

    def test_interface_symbol_and_exports(self, parsed) -> None:
        assert [(s.name, s.symbol_type) for s in parsed.symbols] == [("Reader", "interface")]
        assert "helper" not in parsed.exports
        assert {"New", "Cache", "Reader"} <= set(parsed.exports)


class TestDocumentParser:
    """Markdown and reStructuredText headings."""

    def test_markdown_headings_skip_fences(self) -> None:
        text = "# Title\n\nIntro\n\n```\n# not a heading\n```\n\n## Usage ##\n"
        parsed = DocumentParser().parse("README.md", text)
        assert parsed.language == "markdown"
        assert parsed.headings == ["Title", "Usage"]
        assert parsed.exports == ["Title", "Usage"]
        assert parsed.functions == []

    def test_rst_headings(self) -> None:
        text = "Guide\n=====\n\nBody\n\nShort\n--\n"
        parsed = DocumentParser().parse("docs/guide.rst", text)
        assert parsed.language == "restructuredtext"
        assert parsed.headings == ["Guide"]

    def test_text_has_no_headings(self) -> None:
        parsed = DocumentParser().parse("notes.txt", "# hello\n")
        assert parsed.language == "text"
        assert parsed.headings == []


class TestParserRegistry:
    """Extension dispatch."""

    def test_default_registry_dispatch(self) -> None:
        registry = default_registry()
        assert isinstance(registry.for_path("a/b.py"), PythonParser)
        assert isinstance(registry.for_path("a/b.TS"), TypeScriptParser)
        assert isinstance(registry.for_path("a/b.go"), GoParser)
        assert isinstance(registry.for_path("README.md"), DocumentParser)
        assert registry.for_path("image.png") is None

    def test_docs_excluded_when_disabled(self) -> None:
        registry = default_registry(include_docs=False)
        assert not registry.supports("README.md")
        assert registry.supports("main.py")

    def test_unsupported_language_raises(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            ParserRegistry().parse("x.cobol", "")
        assert exc_info.value.error_name == "PARSE_UNSUPPORTED_LANGUAGE"

    def test_later_registration_wins(self) -> None:
        class Custom(DocumentParser):
            extensions = frozenset({".py"})

        registry = default_registry()
        registry.register(Custom())
        assert isinstance(registry.for_path("x.py"), Custom)

    def test_missing_grammar_raises_parse_error(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            load_language(GrammarSpec("nope", "tree_sitter_does_not_exist"))
        assert exc_info.value.error_name == "PARSE_GRAMMAR_UNAVAILABLE"

    def test_tree_sitter_subclass_must_extract(self) -> None:
        class Incomplete(TreeSitterParser):
            language = "incomplete"
            extensions = frozenset({".inc"})

        with pytest.raises(TypeError, match="_extract"):
            Incomplete()
