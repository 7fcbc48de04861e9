"""Token-budgeted retrieval contexts.

The budget is split by category before anything is assembled:
``floor(max_tokens * ratio)`` for code, documentation and conversation
history. Allowance a category leaves unused is not handed to the others.

Within a category, candidates are appended in relevance order. The first
candidate that does not fit is cut at a line boundary (never mid-line) or,
when not even its first line fits, dropped; the category stops there.
Section headings and separators are charged to their category, so the
estimate of the assembled content never exceeds ``max_tokens``.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

import structlog

from coderecall.config.constants import CONTEXT_MAX_TOKENS
from coderecall.config.models import CodeRecallConfig
from coderecall.core.errors import ContextError, EmbeddingProviderError
from coderecall.context.tokens import TokenEstimator
from coderecall.index._internal.units import DOC_LANGUAGES
from coderecall.index.models import EmbeddableUnit, UnitKind
from coderecall.providers.retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from coderecall.index.ops import CodebaseIndexer
    from coderecall.providers.base import EmbeddingProvider

log = structlog.get_logger()

TRUNCATION_MARKER = "... (truncated)"

CODE_HEADING = "## Relevant Code"
DOCS_HEADING = "## Relevant Documentation"
HISTORY_HEADING = "## Recent Conversation"

_SECTION_GAP = "\n\n"
_TEST_MARKERS = ("test", "spec")


# =============================================================================
# Options and results
# =============================================================================


@dataclass
class ContextOptions:
    """Per-call knobs. Defaults mirror ``ContextConfig``/``SearchConfig``."""

    max_tokens: int = 4000
    include_dependencies: bool = True
    include_tests: bool = False
    include_docs: bool = True
    top_k: int = 10
    diversity: float | None = 0.3
    code_ratio: float = 0.6
    docs_ratio: float = 0.2
    history_ratio: float = 0.2

    def __post_init__(self) -> None:
        if self.max_tokens < 0 or self.max_tokens > CONTEXT_MAX_TOKENS:
            raise ContextError.invalid_budget(
                f"max_tokens must be in [0, {CONTEXT_MAX_TOKENS}]", max_tokens=self.max_tokens
            )
        ratios = {
            "code_ratio": self.code_ratio,
            "docs_ratio": self.docs_ratio,
            "history_ratio": self.history_ratio,
        }
        for name, value in ratios.items():
            if not 0.0 <= value <= 1.0:
                raise ContextError.invalid_budget(f"{name} must be in [0, 1]", **{name: value})
        if sum(ratios.values()) > 1.0 + 1e-9:
            raise ContextError.invalid_budget("ratios must sum to <= 1.0", **ratios)

    @classmethod
    def from_config(cls, config: CodeRecallConfig, **overrides: object) -> ContextOptions:
        values: dict[str, object] = {
            "max_tokens": config.context.max_tokens,
            "top_k": config.search.top_k,
            "diversity": config.search.diversity,
            "code_ratio": config.context.code_ratio,
            "docs_ratio": config.context.docs_ratio,
            "history_ratio": config.context.history_ratio,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]

    def allowance(self, ratio: float) -> int:
        return math.floor(self.max_tokens * ratio)


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: str


@dataclass
class RetrievalContext:
    """Assembled context.

    ``sources`` lists the ids of the units included (in full or cut), code
    before documentation. ``sections`` maps category to its estimated tokens.
    """

    content: str
    token_count: int
    sources: list[str] = field(default_factory=list)
    truncated: bool = False
    sections: dict[str, int] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not self.content


# =============================================================================
# Rendering
# =============================================================================


@dataclass(frozen=True)
class _Block:
    """One renderable candidate: a head line, body lines, optional tail."""

    key: str | None
    head: str
    lines: tuple[str, ...]
    tail: str = ""

    def render(self, keep: int | None = None, *, marker: bool = False) -> str:
        body = list(self.lines if keep is None else self.lines[:keep])
        if marker:
            body.append(TRUNCATION_MARKER)
        parts = [self.head, *body]
        if self.tail:
            parts.append(self.tail)
        return "\n".join(parts)


@dataclass
class _Section:
    name: str
    text: str = ""
    keys: list[str] = field(default_factory=list)
    stopped: bool = False


def _unit_block(unit: EmbeddableUnit) -> _Block:
    lines = tuple(unit.content.rstrip("\n").split("\n"))
    language = unit.metadata.language
    if language in DOC_LANGUAGES:
        return _Block(key=unit.id, head=f"### {unit.source}", lines=lines)
    label = f"### {unit.source} (lines {unit.start_line}-{unit.end_line}) [{language}]"
    return _Block(key=unit.id, head=f"{label}\n```{language}", lines=lines, tail="```")


def _turn_block(turn: ConversationTurn) -> _Block:
    role = turn.role.strip().capitalize() or "User"
    return _Block(key=None, head=f"**{role}:**", lines=tuple(turn.content.rstrip("\n").split("\n")))


def _is_doc(unit: EmbeddableUnit) -> bool:
    return unit.metadata.language in DOC_LANGUAGES


def _is_test_path(path: str) -> bool:
    lowered = path.lower()
    return any(marker in lowered for marker in _TEST_MARKERS)


def _dedupe(units: Iterable[EmbeddableUnit], seen: set[str] | None = None) -> list[EmbeddableUnit]:
    seen = set() if seen is None else seen
    out: list[EmbeddableUnit] = []
    for unit in units:
        if unit.id in seen:
            continue
        seen.add(unit.id)
        out.append(unit)
    return out


# =============================================================================
# Builder
# =============================================================================


class ContextBuilder:
    """Assembles ``RetrievalContext`` blobs from an indexed repository.

    Usage::

        builder = ContextBuilder(indexer, provider)
        ctx = builder.build_function_context("authenticate")
        prompt = builder.format_prompt(ctx, "How does login work?")
    """

    def __init__(
        self,
        indexer: CodebaseIndexer,
        provider: EmbeddingProvider | None = None,
        *,
        config: CodeRecallConfig | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.indexer = indexer
        self.provider = provider
        self.config = config or indexer.config
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config.embedding)
        self.estimator = TokenEstimator(self.config.context.chars_per_token)

    def default_options(self, **overrides: object) -> ContextOptions:
        return ContextOptions.from_config(self.config, **overrides)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def build_function_context(
        self,
        name: str,
        options: ContextOptions | None = None,
        history: Sequence[ConversationTurn] | None = None,
    ) -> RetrievalContext:
        """Context centered on the function(s) named ``name``.

        Raises:
            ContextError: no function unit matches ``name``.
        """
        opts = options or self.default_options()
        targets = self.indexer.search_functions(name)
        if not targets:
            raise ContextError.symbol_not_found(name)

        seen: set[str] = set()
        code = _dedupe(targets, seen)
        code += _dedupe(self._containing_classes(targets), seen)
        if opts.include_dependencies:
            limit = self.config.context.max_dependencies
            for target in targets:
                code += _dedupe(self.indexer.resolve_dependencies(target, limit=limit), seen)
        if opts.include_tests:
            code += _dedupe(self._test_units(name), seen)

        docs: list[EmbeddableUnit] = []
        if opts.include_docs:
            docs = _dedupe([*self._nearest_docs(targets), *self._docs_mentioning(name)])

        log.debug("context.function_candidates", name=name, code=len(code), docs=len(docs))
        return self._assemble(code, docs, history, opts)

    def build_theme_context(
        self,
        theme: str,
        options: ContextOptions | None = None,
        history: Sequence[ConversationTurn] | None = None,
    ) -> RetrievalContext:
        """Context of the units semantically closest to ``theme``.

        Without a usable provider the candidates come from a name search.

        Raises:
            DimensionMismatchError: the provider's vectors do not match the index.
        """
        opts = options or self.default_options()
        units = self._theme_units(theme, opts)
        code = [u for u in units if not _is_doc(u)]
        docs = [u for u in units if _is_doc(u)] if opts.include_docs else []
        return self._assemble(code, docs, history, opts)

    def format_prompt(self, context: RetrievalContext, question: str) -> str:
        parts = ["# Codebase Context"]
        if context.content:
            parts.append(context.content)
        parts.extend(["## Current Question", question])
        return "\n\n".join(parts)

    # -------------------------------------------------------------------------
    # Candidate selection
    # -------------------------------------------------------------------------

    def _containing_classes(self, targets: list[EmbeddableUnit]) -> list[EmbeddableUnit]:
        owners: list[EmbeddableUnit] = []
        for target in targets:
            symbol = target.metadata.symbol_name or ""
            if "." not in symbol:
                continue
            owner = symbol.rsplit(".", 1)[0]
            owners.extend(
                cls
                for cls in self.indexer.search_classes(owner)
                if cls.source == target.source and cls.metadata.symbol_name == owner
            )
        return owners

    def _test_units(self, name: str) -> list[EmbeddableUnit]:
        bare = name.rsplit(".", 1)[-1]
        units = self.indexer.current_index().units.values()
        in_tests = [u for u in units if _is_test_path(u.source) and not _is_doc(u) and bare in u.content]
        functions = [u for u in in_tests if u.kind is UnitKind.FUNCTION]
        picked = functions or [u for u in in_tests if u.kind is UnitKind.FILE]
        return sorted(picked, key=lambda u: (u.source, u.start_line, u.id))

    def _doc_files(self) -> list[EmbeddableUnit]:
        units = self.indexer.current_index().units.values()
        return [u for u in units if u.kind is UnitKind.FILE and _is_doc(u)]

    def _nearest_docs(self, targets: list[EmbeddableUnit]) -> list[EmbeddableUnit]:
        """Docs in the targets' directories or their ancestors, nearest first, READMEs first."""
        ranked: dict[str, tuple[int, int, str]] = {}
        docs = {u.id: u for u in self._doc_files()}
        for target in targets:
            target_dir = PurePosixPath(target.source).parent
            ancestors = [target_dir, *target_dir.parents]
            for unit in docs.values():
                doc_path = PurePosixPath(unit.source)
                if doc_path.parent not in ancestors:
                    continue
                distance = ancestors.index(doc_path.parent)
                readme = 0 if doc_path.name.lower().startswith("readme") else 1
                rank = (distance, readme, unit.source)
                if unit.id not in ranked or rank < ranked[unit.id]:
                    ranked[unit.id] = rank
        return [docs[uid] for uid in sorted(ranked, key=lambda uid: ranked[uid])]

    def _docs_mentioning(self, name: str) -> list[EmbeddableUnit]:
        bare = name.rsplit(".", 1)[-1]
        hits = [u for u in self._doc_files() if bare in u.content]
        return sorted(hits, key=lambda u: u.source)

    def _theme_units(self, theme: str, opts: ContextOptions) -> list[EmbeddableUnit]:
        provider = self.provider
        if provider is None:
            log.info("context.semantic_unavailable", theme=theme, reason="no provider")
            return self._name_search(theme)
        try:
            vector = call_with_retry(
                lambda: provider.embed(theme), self.retry_policy, operation="embed_query"
            )
        except EmbeddingProviderError as e:
            log.warning("context.semantic_unavailable", theme=theme, reason=e.message)
            return self._name_search(theme)
        hits = self.indexer.semantic_search(vector, top_k=opts.top_k, diversity=opts.diversity)
        return [hit.unit for hit in hits]

    def _name_search(self, theme: str) -> list[EmbeddableUnit]:
        units: list[EmbeddableUnit] = []
        for word in dict.fromkeys(theme.split()):
            units += self.indexer.search_functions(word)
            units += self.indexer.search_classes(word)
        return _dedupe(units)

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    def _assemble(
        self,
        code: list[EmbeddableUnit],
        docs: list[EmbeddableUnit],
        history: Sequence[ConversationTurn] | None,
        opts: ContextOptions,
    ) -> RetrievalContext:
        sections = [
            self._fill("code", CODE_HEADING, [_unit_block(u) for u in code], opts.allowance(opts.code_ratio)),
            self._fill("docs", DOCS_HEADING, [_unit_block(u) for u in docs], opts.allowance(opts.docs_ratio)),
        ]
        if history:
            # most recent turns are picked first, rendered oldest first
            turns = [_turn_block(t) for t in reversed(history)]
            sections.append(
                self._fill(
                    "history",
                    HISTORY_HEADING,
                    turns,
                    opts.allowance(opts.history_ratio),
                    chronological=True,
                )
            )

        content = _SECTION_GAP.join(s.text for s in sections if s.text)
        context = RetrievalContext(
            content=content,
            token_count=self.estimator.estimate(content),
            sources=[key for s in sections for key in s.keys],
            truncated=any(s.stopped for s in sections),
            sections={s.name: self.estimator.estimate(s.text) for s in sections},
        )
        log.debug(
            "context.assembled",
            tokens=context.token_count,
            max_tokens=opts.max_tokens,
            sources=len(context.sources),
            truncated=context.truncated,
        )
        return context

    def _fill(
        self,
        name: str,
        heading: str,
        blocks: list[_Block],
        allowance: int,
        *,
        chronological: bool = False,
    ) -> _Section:
        section = _Section(name=name)
        rendered: list[str] = []
        for block in blocks:
            full = block.render()
            if self._fits(heading, [*rendered, full], allowance):
                rendered.append(full)
                if block.key is not None:
                    section.keys.append(block.key)
                continue
            partial = self._truncate(heading, rendered, block, allowance)
            if partial is not None:
                rendered.append(partial)
                if block.key is not None:
                    section.keys.append(block.key)
            section.stopped = True
            break

        if rendered:
            ordered = rendered[::-1] if chronological else rendered
            section.text = _section_text(heading, ordered)
        return section

    def _truncate(self, heading: str, rendered: list[str], block: _Block, allowance: int) -> str | None:
        """Longest line prefix of ``block`` that fits, marked when the marker fits too."""
        for marker in (True, False):
            lo, hi = 1, len(block.lines) - 1
            best: int | None = None
            while lo <= hi:
                mid = (lo + hi) // 2
                if self._fits(heading, [*rendered, block.render(mid, marker=marker)], allowance):
                    best = mid
                    lo = mid + 1
                else:
                    hi = mid - 1
            if best is not None:
                return block.render(best, marker=marker)
        return None

    def _fits(self, heading: str, rendered: list[str], allowance: int) -> bool:
        # the gap that may follow this section is charged here too
        return self.estimator.fits(_section_text(heading, rendered) + _SECTION_GAP, allowance)


def _section_text(heading: str, rendered: list[str]) -> str:
    return _SECTION_GAP.join([heading, *rendered])
