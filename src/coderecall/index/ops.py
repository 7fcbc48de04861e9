"""Embeddable unit store: build, persist and query a repository index.

``CodebaseIndexer`` is the entry point for every index operation. It
enforces the build invariants:

- One build per repository root at a time: an in-process keyed lock plus an
  ``fcntl`` lock on ``build.lock`` in the repo's data directory.
- Per-file checkpoints: each file's record and units are written in one
  transaction on the coordinating thread, so a cancelled or crashed build
  leaves a consistent, reusable index.
- Vectors are reused for every unit whose id and content hash are unchanged;
  only new or changed units reach the provider.

Pipeline: walk (ignore rules) -> parse (language collaborator) -> derive
units -> reuse/embed -> persist.
"""

from __future__ import annotations

import fcntl
import math
import os
import threading
import time
from collections import Counter
from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from coderecall.config.constants import (
    BUILD_LOCK_NAME,
    INDEX_DB_NAME,
    SEARCH_MAX_TOP_K,
)
from coderecall.config.models import CodeRecallConfig
from coderecall.core.errors import (
    DimensionMismatchError,
    EmbeddingProviderError,
    IndexBusyError,
    ParseError,
)
from coderecall.core.locks import KeyedLocks
from coderecall.core.logging import clear_operation_id, set_operation_id
from coderecall.embedding import cosine_similarities, derive_repo_id, hash_content, validate_vector
from coderecall.index._internal.ignore import IgnoreChecker, matches_glob
from coderecall.index._internal.parsing import ParserRegistry, default_registry
from coderecall.index._internal.store import UnitStore
from coderecall.index._internal.units import derive_units, embedding_text
from coderecall.index.models import (
    BuildReport,
    EmbeddableUnit,
    FileRecord,
    Index,
    IndexStats,
    SearchFilters,
    SearchHit,
    UnitKind,
)
from coderecall.providers.retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from coderecall.providers.base import EmbeddingProvider

log = structlog.get_logger()

# Builds of the same root exclude each other across indexer instances.
_BUILD_LOCKS = KeyedLocks()


@dataclass
class _FileOutcome:
    """Result of preparing one file on a worker thread."""

    path: str
    record: FileRecord | None = None
    units: list[EmbeddableUnit] = field(default_factory=list)
    reused_file: bool = False
    units_embedded: int = 0
    units_reused: int = 0
    embed_failures: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.record is None


class CodebaseIndexer:
    """Index of embeddable units for one repository root.

    Usage::

        indexer = CodebaseIndexer(repo_root, provider, data_dir=data_dir)
        index = indexer.build_index()

        hits = indexer.semantic_search(provider.embed("login"), top_k=5)
        fns = indexer.search_functions("authenticate")

    All constructor inputs are explicit; nothing is read from ambient process
    state, so several repositories can be indexed in one process.
    """

    def __init__(
        self,
        root: Path,
        provider: EmbeddingProvider | None = None,
        *,
        repo_id: str | None = None,
        data_dir: Path | None = None,
        config: CodeRecallConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        registry: ParserRegistry | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.provider = provider
        self.config = config or CodeRecallConfig()
        self.repo_id = repo_id or derive_repo_id(self.root)
        base_dir = Path(data_dir) if data_dir is not None else self.config.storage.resolve_data_dir()
        self.data_dir = base_dir / self.repo_id
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config.embedding)
        self.registry = registry or default_registry(include_docs=self.config.indexer.include_docs)
        self.max_workers = max_workers or self.config.indexer.max_workers or os.cpu_count() or 4
        self.last_report: BuildReport | None = None

        self._store = UnitStore(self.data_dir / INDEX_DB_NAME, repo_id=self.repo_id, root=str(self.root))
        self._index: Index | None = None
        self._index_lock = threading.Lock()

    # =========================================================================
    # Build
    # =========================================================================

    def build_index(
        self,
        *,
        cancel_event: threading.Event | None = None,
        blocking: bool = True,
        on_file: Callable[[str], None] | None = None,
    ) -> Index:
        """Walk the tree and bring the persisted index up to date.

        Unchanged units keep their stored vectors; new and changed units are
        embedded. Unparseable files are skipped with a warning in
        ``last_report``. Setting ``cancel_event`` stops the build at the next
        file boundary and returns the consistent partial index.

        Raises:
            IndexBusyError: another build of this root is running and
                ``blocking`` is False.
            DimensionMismatchError: stored vectors do not match the provider;
                call ``clear_cache()`` and rebuild.
        """
        return self._run(None, cancel_event=cancel_event, blocking=blocking, on_file=on_file)

    def update_index(
        self,
        paths: Iterable[Path | str],
        *,
        cancel_event: threading.Event | None = None,
        blocking: bool = True,
    ) -> Index:
        """Incremental build limited to ``paths`` (changed, added or deleted)."""
        rel_paths = sorted({self._relpath(p) for p in paths})
        return self._run(rel_paths, cancel_event=cancel_event, blocking=blocking, on_file=None)

    def load_index(self) -> Index:
        """The persisted index, without building."""
        with self._index_lock:
            self._index = self._store.load()
            return self._index

    def clear_cache(self) -> None:
        """Discard the persisted index; the next build starts from scratch."""
        with self._exclusive(blocking=True):
            self._store.clear()
            with self._index_lock:
                self._index = None

    def close(self) -> None:
        self._store.close()

    def _run(
        self,
        paths: list[str] | None,
        *,
        cancel_event: threading.Event | None,
        blocking: bool,
        on_file: Callable[[str], None] | None,
    ) -> Index:
        set_operation_id()
        try:
            with self._exclusive(blocking=blocking):
                return self._build_locked(paths, cancel_event, on_file)
        finally:
            clear_operation_id()

    def _build_locked(
        self,
        paths: list[str] | None,
        cancel_event: threading.Event | None,
        on_file: Callable[[str], None] | None,
    ) -> Index:
        start = time.perf_counter()
        report = BuildReport()
        index = self._store.load()
        self._check_provider_dimensions(index)

        checker = IgnoreChecker(self.root, respect_gitignore=self.config.indexer.respect_gitignore)
        if paths is None:
            candidates = self._walk(checker)
            present = set(candidates)
            gone = [p for p in index.files if p not in present]
        else:
            candidates = [p for p in paths if self._is_candidate(p, checker)]
            gone = [p for p in paths if p in index.files and p not in candidates]

        log.info(
            "index.build_started",
            root=str(self.root),
            files=len(candidates),
            incremental=paths is not None,
        )

        for path in gone:
            self._store.remove_file(path)
            index.drop_file(path)
            report.files_removed += 1
            log.debug("index.file_removed", path=path)

        report.files_scanned = len(candidates)
        self._process(candidates, index, report, cancel_event, on_file)

        provider = self.provider
        self._store.write_meta(
            provider=provider.name if provider is not None else None,
            model=provider.model if provider is not None else None,
            dimensions=index.dimensions,
        )

        report.elapsed_ms = int((time.perf_counter() - start) * 1000)
        self.last_report = report
        with self._index_lock:
            self._index = index

        log.info(
            "index.build_complete",
            indexed=report.files_indexed,
            reused=report.files_reused,
            removed=report.files_removed,
            skipped=report.files_skipped,
            embedded=report.units_embedded,
            embed_failures=report.embed_failures,
            cancelled=report.cancelled,
            elapsed_ms=report.elapsed_ms,
        )
        return index

    def _process(
        self,
        candidates: list[str],
        index: Index,
        report: BuildReport,
        cancel_event: threading.Event | None,
        on_file: Callable[[str], None] | None,
    ) -> None:
        """Prepare files on the pool, persist each one here as it completes."""
        queue = iter(candidates)
        pending: set[Future[_FileOutcome]] = set()
        exhausted = False
        in_flight = self.max_workers * 2

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="coderecall-index") as pool:
            try:
                while True:
                    while not exhausted and len(pending) < in_flight:
                        if cancel_event is not None and cancel_event.is_set():
                            report.cancelled = True
                            exhausted = True
                            log.info("index.build_cancelled", pending=len(pending))
                            break
                        path = next(queue, None)
                        if path is None:
                            exhausted = True
                            break
                        stored = {u.id: u for u in index.units_for(path)}
                        pending.add(pool.submit(self._prepare_file, path, index.files.get(path), stored))

                    if not pending:
                        break
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        outcome = future.result()
                        self._commit(outcome, index, report)
                        if on_file is not None:
                            on_file(outcome.path)
            except BaseException:
                for future in pending:
                    future.cancel()
                raise

    def _commit(self, outcome: _FileOutcome, index: Index, report: BuildReport) -> None:
        """Persist one file's outcome (coordinator thread only)."""
        report.warnings.extend(outcome.warnings)
        if outcome.skipped:
            report.files_skipped += 1
            if outcome.path in index.files:
                self._store.remove_file(outcome.path)
                index.drop_file(outcome.path)
            return

        assert outcome.record is not None
        if outcome.reused_file:
            report.files_reused += 1
            report.units_reused += outcome.units_reused
            return

        current = index.dimensions
        for unit in outcome.units:
            if unit.vector is not None and current is not None and len(unit.vector) != current:
                raise DimensionMismatchError.stale_index(current, len(unit.vector))

        self._store.save_file(outcome.record, outcome.units)
        index.put_file(outcome.record, outcome.units)
        report.files_indexed += 1
        report.units_embedded += outcome.units_embedded
        report.units_reused += outcome.units_reused
        report.embed_failures += outcome.embed_failures
        log.debug(
            "index.file_indexed",
            path=outcome.path,
            units=len(outcome.units),
            embedded=outcome.units_embedded,
            reused=outcome.units_reused,
        )

    def _prepare_file(
        self,
        path: str,
        record: FileRecord | None,
        stored: dict[str, EmbeddableUnit],
    ) -> _FileOutcome:
        """Read, parse, derive and embed one file (worker thread)."""
        outcome = _FileOutcome(path=path)
        full_path = self.root / path
        max_bytes = self.config.indexer.max_file_size_kb * 1024
        try:
            stat = full_path.stat()
            if stat.st_size > max_bytes:
                outcome.warnings.append(
                    f"{path}: larger than {self.config.indexer.max_file_size_kb} KB, skipped"
                )
                return outcome
            data = full_path.read_bytes()
        except OSError as e:
            return self._skip(outcome, ParseError.unreadable(path, str(e)))

        file_hash = hash_content(data)
        if (
            record is not None
            and record.hash == file_hash
            and len(stored) == len(record.unit_ids)
            and all(u.embedded for u in stored.values())
        ):
            outcome.record = record
            outcome.units = [stored[uid] for uid in record.unit_ids]
            outcome.reused_file = True
            outcome.units_reused = len(outcome.units)
            return outcome

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return self._skip(outcome, ParseError.unreadable(path, "not valid UTF-8"))
        try:
            parsed = self.registry.parse(path, text)
            units = derive_units(parsed, text, last_modified=stat.st_mtime)
        except ParseError as e:
            return self._skip(outcome, e)
        except Exception as e:
            log.error("index.parser_crashed", path=path, exc_info=True)
            return self._skip(outcome, ParseError.failed(path, f"{type(e).__name__}: {e}"))

        if parsed.partial:
            outcome.warnings.append(f"{path}: {parsed.error_count} syntax errors, indexed partially")
            log.info("index.partial_parse", path=path, errors=parsed.error_count)

        to_embed: list[int] = []
        for i, unit in enumerate(units):
            previous = stored.get(unit.id)
            if previous is not None and previous.hash == unit.hash and previous.vector is not None:
                units[i] = unit.with_vector(previous.vector)
                outcome.units_reused += 1
            else:
                to_embed.append(i)

        if to_embed and self.provider is not None:
            max_chars = self.config.indexer.max_embed_chars
            texts = [embedding_text(units[i], max_chars) for i in to_embed]
            vectors, warnings = self._embed_texts(path, texts)
            outcome.warnings.extend(warnings)
            for i, vector in zip(to_embed, vectors, strict=True):
                if vector is None:
                    outcome.embed_failures += 1
                    continue
                units[i] = units[i].with_vector(vector)
                outcome.units_embedded += 1

        outcome.units = units
        outcome.record = FileRecord(
            path=path,
            hash=file_hash,
            language=parsed.language,
            unit_ids=tuple(u.id for u in units),
            loc=text.count("\n") + 1 if text else 0,
            last_modified=stat.st_mtime,
        )
        return outcome

    @staticmethod
    def _skip(outcome: _FileOutcome, error: ParseError) -> _FileOutcome:
        log.warning("index.file_skipped", path=outcome.path, error=error.error_name, reason=error.message)
        outcome.warnings.append(f"{outcome.path}: {error.message}")
        return outcome

    def _embed_texts(
        self, path: str, texts: Sequence[str]
    ) -> tuple[list[tuple[float, ...] | None], list[str]]:
        """Vectors for ``texts``; None where the provider failed after retries or
        returned an empty or non-finite vector.

        One batch call first; when it fails the units are embedded one by one
        so a single bad input does not cost the whole file.
        """
        provider = self.provider
        assert provider is not None
        try:
            batch = call_with_retry(
                lambda: provider.embed_batch(list(texts)), self.retry_policy, operation="embed_batch"
            )
            if len(batch) != len(texts):
                raise EmbeddingProviderError.bad_response(
                    provider.name, f"expected {len(texts)} vectors, got {len(batch)}"
                )
            vectors = [tuple(float(x) for x in vec) for vec in batch]
            if not all(validate_vector(v) for v in vectors):
                raise EmbeddingProviderError.bad_response(
                    provider.name, "empty or non-finite vector in batch"
                )
            return vectors, []
        except EmbeddingProviderError as e:
            log.warning("index.batch_embed_failed", path=path, units=len(texts), error=e.error_name)

        results: list[tuple[float, ...] | None] = []
        warnings: list[str] = []
        for text in texts:
            try:
                vec = call_with_retry(
                    lambda t=text: provider.embed(t), self.retry_policy, operation="embed"
                )
                vector = tuple(float(x) for x in vec)
                if not validate_vector(vector):
                    raise EmbeddingProviderError.bad_response(
                        provider.name, "empty or non-finite vector"
                    )
                results.append(vector)
            except EmbeddingProviderError as e:
                results.append(None)
                warnings.append(f"{path}: embedding failed ({e.error_name})")
                log.warning("index.embed_failed", path=path, error=e.error_name, reason=e.message)
        return results, warnings

    def _check_provider_dimensions(self, index: Index) -> None:
        stored = index.dimensions
        declared = self.provider.dimensions if self.provider is not None else None
        if stored is not None and declared is not None and stored != declared:
            raise DimensionMismatchError.stale_index(stored, declared)

    @contextmanager
    def _exclusive(self, *, blocking: bool) -> Iterator[None]:
        """Hold the per-root build lock, in-process and across processes."""
        key = str(self.root)
        with _BUILD_LOCKS.hold(key, blocking=blocking) as acquired:
            if not acquired:
                raise IndexBusyError.for_root(key)
            self.data_dir.mkdir(parents=True, exist_ok=True)
            lock_fd = os.open(str(self.data_dir / BUILD_LOCK_NAME), os.O_RDWR | os.O_CREAT)
            try:
                flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
                try:
                    fcntl.flock(lock_fd, flags)
                except BlockingIOError as e:
                    raise IndexBusyError.for_root(key) from e
                try:
                    yield
                finally:
                    fcntl.flock(lock_fd, fcntl.LOCK_UN)
            finally:
                os.close(lock_fd)

    # =========================================================================
    # Discovery
    # =========================================================================

    def _walk(self, checker: IgnoreChecker) -> list[str]:
        """Every indexable file, repo-relative POSIX, in sorted walk order."""
        files: list[str] = []
        for dirpath, dirnames, filenames in self.root.walk():
            dirnames[:] = sorted(d for d in dirnames if not checker.should_prune_dir(d))
            for filename in sorted(filenames):
                rel = (dirpath / filename).relative_to(self.root).as_posix()
                if self.registry.supports(rel) and not checker.is_excluded_rel(rel):
                    files.append(rel)
        return files

    def _is_candidate(self, rel: str, checker: IgnoreChecker) -> bool:
        full_path = self.root / rel
        if not full_path.is_file() or not self.registry.supports(rel):
            return False
        parts = Path(rel).parts[:-1]
        if any(checker.should_prune_dir(part) for part in parts):
            return False
        return not checker.is_excluded_rel(rel)

    def _relpath(self, path: Path | str) -> str:
        candidate = Path(path)
        if candidate.is_absolute():
            candidate = candidate.resolve().relative_to(self.root)
        return candidate.as_posix()

    # =========================================================================
    # Queries
    # =========================================================================

    def current_index(self) -> Index:
        """The last built or loaded index (loaded from disk on first use)."""
        with self._index_lock:
            if self._index is None:
                self._index = self._store.load()
            return self._index

    def search_functions(self, name: str, filters: SearchFilters | None = None) -> list[EmbeddableUnit]:
        """Function units named ``name``.

        Exact match on the bare or ``Class.method`` name first; when nothing
        matches exactly, a case-insensitive substring match. Never raises.
        """
        return self._search_named(UnitKind.FUNCTION, name, filters)

    def search_classes(self, name: str, filters: SearchFilters | None = None) -> list[EmbeddableUnit]:
        return self._search_named(UnitKind.CLASS, name, filters)

    def _search_named(
        self, kind: UnitKind, name: str, filters: SearchFilters | None
    ) -> list[EmbeddableUnit]:
        if not name:
            return []
        pool = [
            u for u in self.current_index().units.values() if u.kind is kind and _matches(u, filters)
        ]
        exact = [u for u in pool if _symbol_matches(u, name)]
        if exact:
            hits = exact
        else:
            needle = name.lower()
            hits = [u for u in pool if needle in (u.metadata.symbol_name or "").lower()]
        return sorted(hits, key=lambda u: (u.source, u.start_line, u.id))

    def semantic_search(
        self,
        query_vector: Sequence[float],
        top_k: int = 10,
        diversity: float | None = 0.3,
        filters: SearchFilters | None = None,
    ) -> list[SearchHit]:
        """Embedded units ranked by cosine similarity to ``query_vector``.

        Ties are broken by unit id. The diversity pass caps the hits taken
        from one file at ``max(1, floor(diversity * top_k))``;
        ``diversity=None`` or ``>= 1`` disables the cap.

        Raises:
            DimensionMismatchError: the query and stored vectors differ in size.
        """
        if top_k <= 0:
            return []
        top_k = min(top_k, SEARCH_MAX_TOP_K)
        candidates = [
            u
            for u in self.current_index().units.values()
            if u.vector is not None and _matches(u, filters)
        ]
        if not candidates:
            return []

        vectors = [u.vector for u in candidates if u.vector is not None]
        scores = cosine_similarities(query_vector, vectors)
        ranked = sorted(zip(candidates, scores, strict=True), key=lambda pair: (-pair[1], pair[0].id))

        cap = None if diversity is None or diversity >= 1 else max(1, math.floor(diversity * top_k))
        per_file: Counter[str] = Counter()
        hits: list[SearchHit] = []
        for unit, score in ranked:
            if cap is not None and per_file[unit.source] >= cap:
                continue
            per_file[unit.source] += 1
            hits.append(SearchHit(unit=unit, score=score))
            if len(hits) >= top_k:
                break
        return hits

    def find_references(self, symbol_name: str) -> list[EmbeddableUnit]:
        """Units that call or import ``symbol_name``."""
        bare = symbol_name.rsplit(".", 1)[-1]
        hits = [
            u
            for u in self.current_index().units.values()
            if symbol_name in u.metadata.dependencies or bare in u.metadata.dependencies
        ]
        return sorted(hits, key=lambda u: (u.source, u.start_line, u.id))

    def resolve_dependencies(self, unit: EmbeddableUnit, limit: int | None = None) -> list[EmbeddableUnit]:
        """Function and class units named by ``unit``'s dependencies."""
        resolved: dict[str, EmbeddableUnit] = {}
        for dep in sorted(unit.metadata.dependencies):
            for kind in (UnitKind.FUNCTION, UnitKind.CLASS):
                for match in self._search_exact(kind, dep):
                    if match.id != unit.id:
                        resolved.setdefault(match.id, match)
            if limit is not None and len(resolved) >= limit:
                break
        found = list(resolved.values())
        return found[:limit] if limit is not None else found

    def _search_exact(self, kind: UnitKind, name: str) -> list[EmbeddableUnit]:
        units = self.current_index().units.values()
        return sorted(
            (u for u in units if u.kind is kind and _symbol_matches(u, name)),
            key=lambda u: (u.source, u.start_line, u.id),
        )

    def get_stats(self) -> IndexStats:
        index = self.current_index()
        by_kind: Counter[str] = Counter(u.kind.value for u in index.units.values())
        languages: Counter[str] = Counter(r.language for r in index.files.values())
        complexities = [
            u.metadata.complexity for u in index.units.values() if u.kind is UnitKind.FUNCTION
        ]
        return IndexStats(
            files=len(index.files),
            units_by_kind=dict(by_kind),
            languages=dict(languages),
            embedded=sum(1 for u in index.units.values() if u.embedded),
            dimensions=index.dimensions,
            avg_complexity=sum(complexities) / len(complexities) if complexities else 0.0,
            max_complexity=max(complexities, default=0),
        )


def _symbol_matches(unit: EmbeddableUnit, name: str) -> bool:
    symbol = unit.metadata.symbol_name
    if symbol is None:
        return False
    return symbol == name or symbol.rsplit(".", 1)[-1] == name


def _matches(unit: EmbeddableUnit, filters: SearchFilters | None) -> bool:
    if filters is None:
        return True
    meta = unit.metadata
    if filters.language is not None and meta.language != filters.language:
        return False
    if filters.kind is not None and unit.kind is not filters.kind:
        return False
    if filters.file_pattern is not None and not matches_glob(unit.source, filters.file_pattern):
        return False
    if filters.min_complexity is not None and meta.complexity < filters.min_complexity:
        return False
    if filters.max_complexity is not None and meta.complexity > filters.max_complexity:
        return False
    return all(tag in meta.tags for tag in filters.tags)
