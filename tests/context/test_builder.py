"""Tests for token-budgeted context assembly."""

from pathlib import Path

import pytest
from conftest import make_stub_provider

from coderecall.context import (
    TRUNCATION_MARKER,
    ContextBuilder,
    ContextOptions,
    ConversationTurn,
    TokenEstimator,
)
from coderecall.core.errors import ContextError, DimensionMismatchError, EmbeddingProviderError
from coderecall.index import CodebaseIndexer

AUTH_TEST_TS = """\
import { authenticate } from "../src/auth";

export function testAuthenticateRejectsBadPassword(): void {
  if (authenticate("ann", "wrong") !== null) {
    throw new Error("expected rejection");
  }
}
"""


@pytest.fixture
def repo(ts_repo: Path) -> Path:
    (ts_repo / "README.md").write_text(
        "# Project\n\nLogin flow: call authenticate with a password to get a session token.\n"
    )
    (ts_repo / "src" / "README.md").write_text("# Source\n\nModules live here.\n")
    (ts_repo / "tests").mkdir()
    (ts_repo / "tests" / "auth.test.ts").write_text(AUTH_TEST_TS)
    return ts_repo


@pytest.fixture
def indexer(repo: Path, stub_provider, config, data_dir, fast_retry):
    idx = CodebaseIndexer(repo, stub_provider, data_dir=data_dir, config=config, retry_policy=fast_retry)
    idx.build_index()
    yield idx
    idx.close()


@pytest.fixture
def builder(indexer, stub_provider, fast_retry) -> ContextBuilder:
    return ContextBuilder(indexer, stub_provider, retry_policy=fast_retry)


def _unit_id(indexer: CodebaseIndexer, name: str) -> str:
    (unit,) = indexer.search_functions(name)
    return unit.id


class TestContextOptions:
    """Budget validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_tokens": -1},
            {"max_tokens": 10_000_000},
            {"code_ratio": 1.5},
            {"docs_ratio": -0.1},
            {"code_ratio": 0.7, "docs_ratio": 0.3, "history_ratio": 0.2},
        ],
    )
    def test_invalid_budgets(self, kwargs) -> None:
        with pytest.raises(ContextError) as exc_info:
            ContextOptions(**kwargs)
        assert exc_info.value.error_name == "CONTEXT_INVALID_BUDGET"

    def test_allowance_floors(self) -> None:
        opts = ContextOptions(max_tokens=101)
        assert opts.allowance(opts.code_ratio) == 60
        assert opts.allowance(opts.docs_ratio) == 20

    def test_from_config_overrides(self, config) -> None:
        config.context.max_tokens = 900
        opts = ContextOptions.from_config(config, top_k=3, diversity=None)
        assert opts.max_tokens == 900
        assert opts.top_k == 3
        assert opts.diversity == config.search.diversity


class TestFunctionContext:
    """Context centered on one function."""

    def test_includes_function_dependencies_and_docs(
        self, builder: ContextBuilder, indexer: CodebaseIndexer
    ) -> None:
        ctx = builder.build_function_context("authenticate", ContextOptions(max_tokens=8000))

        assert ctx.sources[0] == _unit_id(indexer, "authenticate")
        assert _unit_id(indexer, "findUser") in ctx.sources
        assert _unit_id(indexer, "issueToken") in ctx.sources
        assert "## Relevant Code" in ctx.content
        assert "```typescript" in ctx.content
        assert "## Relevant Documentation" in ctx.content
        # nearest README first
        assert ctx.content.index("### src/README.md") < ctx.content.index("### README.md")
        assert not ctx.truncated
        assert ctx.token_count == TokenEstimator().estimate(ctx.content)
        assert set(ctx.sections) == {"code", "docs"}

    def test_tests_only_when_requested(self, builder: ContextBuilder) -> None:
        without = builder.build_function_context("authenticate", ContextOptions(max_tokens=8000))
        assert "testAuthenticateRejectsBadPassword" not in without.content

        with_tests = builder.build_function_context(
            "authenticate", ContextOptions(max_tokens=8000, include_tests=True)
        )
        assert "testAuthenticateRejectsBadPassword" in with_tests.content

    def test_dependencies_and_docs_can_be_disabled(
        self, builder: ContextBuilder, indexer: CodebaseIndexer
    ) -> None:
        opts = ContextOptions(max_tokens=8000, include_dependencies=False, include_docs=False)
        ctx = builder.build_function_context("authenticate", opts)
        assert ctx.sources == [_unit_id(indexer, "authenticate")]
        assert "## Relevant Documentation" not in ctx.content

    def test_unknown_function(self, builder: ContextBuilder) -> None:
        with pytest.raises(ContextError) as exc_info:
            builder.build_function_context("doesNotExist")
        assert exc_info.value.error_name == "CONTEXT_SYMBOL_NOT_FOUND"
        assert "doesNotExist" in exc_info.value.message

    def test_overflowing_unit_cut_with_marker(self, builder: ContextBuilder, indexer: CodebaseIndexer) -> None:
        opts = ContextOptions(max_tokens=100, include_dependencies=False, include_docs=False)

        ctx = builder.build_function_context("authenticate", opts)

        assert ctx.truncated
        assert TRUNCATION_MARKER in ctx.content
        assert ctx.content.startswith("## Relevant Code")
        assert "export function authenticate" in ctx.content
        assert "return issueToken(found.name);" not in ctx.content
        assert ctx.sources == [_unit_id(indexer, "authenticate")]
        assert ctx.token_count <= 100

    def test_unit_omitted_when_no_line_fits(self, builder: ContextBuilder) -> None:
        ctx = builder.build_function_context("authenticate", ContextOptions(max_tokens=30))
        assert ctx.truncated
        assert ctx.sources == []
        assert ctx.token_count <= 30

    @pytest.mark.parametrize("max_tokens", list(range(0, 1200, 37)))
    def test_never_exceeds_budget(self, builder: ContextBuilder, max_tokens: int) -> None:
        history = [
            ConversationTurn("user", "How does login work?\nI keep getting null."),
            ConversationTurn("assistant", "authenticate returns null when the password is wrong."),
        ]
        opts = ContextOptions(max_tokens=max_tokens, include_tests=True)

        ctx = builder.build_function_context("authenticate", opts, history)

        assert TokenEstimator().estimate(ctx.content) <= max_tokens
        assert ctx.token_count <= max_tokens
        assert sum(ctx.sections.values()) <= max_tokens


class TestHistory:
    """Conversation turns."""

    def test_rendered_in_chronological_order(self, builder: ContextBuilder) -> None:
        history = [
            ConversationTurn("user", "first question"),
            ConversationTurn("assistant", "first answer"),
            ConversationTurn("user", "second question"),
        ]

        ctx = builder.build_function_context("authenticate", ContextOptions(max_tokens=8000), history)

        content = ctx.content
        assert "## Recent Conversation" in content
        assert "**User:**\nfirst question" in content
        assert content.index("first question") < content.index("first answer") < content.index("second question")

    def test_most_recent_turns_kept_first(self, builder: ContextBuilder) -> None:
        history = [
            ConversationTurn("assistant", "old " * 100),
            ConversationTurn("user", "latest?"),
        ]
        opts = ContextOptions(max_tokens=20, code_ratio=0.0, docs_ratio=0.0, history_ratio=1.0)

        ctx = builder.build_function_context("authenticate", opts, history)

        assert "latest?" in ctx.content
        assert "old" not in ctx.content
        assert ctx.truncated


class TestThemeContext:
    """Semantic retrieval by theme."""

    def test_semantic_hits(self, builder: ContextBuilder, indexer: CodebaseIndexer) -> None:
        ctx = builder.build_theme_context("login", ContextOptions(max_tokens=8000))

        assert _unit_id(indexer, "authenticate") in ctx.sources
        assert "## Relevant Documentation" in ctx.content
        assert "Login flow" in ctx.content

    def test_falls_back_to_name_search_without_provider(
        self, indexer: CodebaseIndexer, fast_retry
    ) -> None:
        builder = ContextBuilder(indexer, None, retry_policy=fast_retry)

        ctx = builder.build_theme_context("authenticate user", ContextOptions(max_tokens=8000))

        assert ctx.sources[0] == _unit_id(indexer, "authenticate")
        assert _unit_id(indexer, "createUser") in ctx.sources

    def test_falls_back_when_provider_fails(self, indexer: CodebaseIndexer, fast_retry) -> None:
        failing = make_stub_provider()
        failing.embed.side_effect = EmbeddingProviderError.timeout("stub", 1.0)
        builder = ContextBuilder(indexer, failing, retry_policy=fast_retry)

        ctx = builder.build_theme_context("authenticate", ContextOptions(max_tokens=8000))

        assert ctx.sources == [_unit_id(indexer, "authenticate")]
        assert failing.embed.call_count == fast_retry.max_attempts

    def test_dimension_mismatch_propagates(self, indexer: CodebaseIndexer, fast_retry) -> None:
        other = make_stub_provider(dimensions=3)
        other.embed.side_effect = lambda text: [1.0, 0.0, 0.0]
        builder = ContextBuilder(indexer, other, retry_policy=fast_retry)

        with pytest.raises(DimensionMismatchError):
            builder.build_theme_context("login")


def test_format_prompt(builder: ContextBuilder) -> None:
    ctx = builder.build_function_context("issueToken", ContextOptions(max_tokens=2000))

    prompt = builder.format_prompt(ctx, "What does this return?")

    assert prompt.startswith("# Codebase Context\n\n## Relevant Code")
    assert prompt.endswith("## Current Question\n\nWhat does this return?")
