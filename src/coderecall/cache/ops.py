"""Dependency-aware cache of AI results.

An entry is served only while every file it was derived from still has the
content hash recorded at write time. Freshness is content-based (SHA-256),
never mtime-based: reverting a file makes its old entries valid again.

Serialization:
- per-key locks order get/set/delete of one (provider, key); same-key
  writers are last-write-wins
- the in-memory byte total is guarded by its own lock and adjusted by the
  exact size each committed transaction added or removed
- every write is one BEGIN IMMEDIATE transaction, so a crash mid-write
  never leaves a partial entry readable
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path

import structlog
from sqlalchemy import func, text
from sqlmodel import select

from coderecall.cache.models import (
    CACHE_TABLES,
    CacheEntryRow,
    CacheStats,
    decode_dependency_hashes,
)
from coderecall.core.db import Database
from coderecall.core.errors import CacheCorruptionError
from coderecall.core.locks import KeyedLocks
from coderecall.embedding import hash_file

log = structlog.get_logger()

_BYTES_PER_MB = 1024 * 1024


def make_cache_key(operation: str, *parts: object) -> str:
    """Colon-joined cache key, e.g. ``explain:function:src/auth.ts:authenticate:brief``."""
    return ":".join([operation, *(str(p) for p in parts)])


class DependencyAwareCache:
    """Persisted key/value cache bounded by total size, evicting LRU entries.

    Keys are scoped by provider name: two providers never share an entry.
    Values are opaque text; the cache never interprets them.
    """

    def __init__(
        self,
        root: Path,
        db_path: Path,
        *,
        max_size_mb: float = 100.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.max_bytes = int(max_size_mb * _BYTES_PER_MB)
        self._clock = clock or time.time
        self._db = Database(db_path, tables=CACHE_TABLES)
        self._db.create_all()

        self._key_locks = KeyedLocks()
        self._size_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._stats_lock = threading.Lock()

        with self._db.session() as session:
            total = session.exec(select(func.coalesce(func.sum(CacheEntryRow.size_bytes), 0))).one()
            last_tick = session.exec(select(func.coalesce(func.max(CacheEntryRow.last_access), 0))).one()
            last_seq = session.exec(select(func.coalesce(func.max(CacheEntryRow.inserted_seq), 0))).one()
        self._total_bytes = int(total)
        self._last_tick = int(last_tick)
        self._last_seq = int(last_seq)
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # =========================================================================
    # Public API
    # =========================================================================

    def get(
        self,
        key: str,
        provider_name: str,
        dependency_paths: Iterable[Path | str] | None = None,
    ) -> str | None:
        """Cached value, or None on a miss.

        Every recorded dependency and every path in ``dependency_paths`` is
        re-hashed. A missing file or a path the entry never recorded is a
        miss and the entry is deleted. A changed hash is a miss too, but the
        entry stays: restoring the file's content makes it a hit again.
        """
        requested = [self._normalize(p) for p in dependency_paths or []]
        with self._key_locks.hold(self._lock_key(provider_name, key)):
            with self._db.session() as session:
                row = session.get(CacheEntryRow, (provider_name, key))
                if row is not None:
                    session.expunge(row)
            if row is None:
                self._count(hit=False)
                return None

            try:
                recorded = row.get_dependency_hashes()
            except CacheCorruptionError as e:
                log.warning("cache.corrupt_entry", key=key, provider=provider_name, reason=e.message)
                self._remove(provider_name, key)
                self._count(hit=False)
                return None

            stale = self._stale_reason(recorded, requested)
            if stale is not None:
                reason, purge = stale
                log.debug("cache.stale", key=key, provider=provider_name, reason=reason, purged=purge)
                if purge:
                    self._remove(provider_name, key)
                self._count(hit=False)
                return None

            tick = self._next_tick()
            with self._db.immediate_transaction() as session:
                session.execute(
                    text(
                        "UPDATE cache_entries SET last_access = :tick "
                        "WHERE provider_name = :provider AND key = :key"
                    ).bindparams(tick=tick, provider=provider_name, key=key)
                )
            self._count(hit=True)
            return row.value

    def set(
        self,
        key: str,
        provider_name: str,
        value: str,
        dependency_paths: Iterable[Path | str] | None = None,
    ) -> bool:
        """Store ``value`` stamped with the current hashes of its dependencies.

        Returns False when the entry alone exceeds the whole budget; it is not
        stored and any previous value for the key is dropped.
        """
        size = len(key.encode("utf-8")) + len(value.encode("utf-8"))
        deps = self._stamp(dependency_paths or [])

        with self._key_locks.hold(self._lock_key(provider_name, key)):
            if size > self.max_bytes:
                log.warning("cache.entry_too_large", key=key, size_bytes=size, max_bytes=self.max_bytes)
                self._remove(provider_name, key)
                return False

            row = CacheEntryRow(
                provider_name=provider_name,
                key=key,
                value=value,
                dependency_hashes_json=json.dumps([list(pair) for pair in deps]),
                size_bytes=size,
                created_at=self._clock(),
                last_access=self._next_tick(),
                inserted_seq=self._next_seq(),
            )
            with self._db.immediate_transaction() as session:
                existing = session.get(CacheEntryRow, (provider_name, key))
                old_size = existing.size_bytes if existing is not None else 0
                session.merge(row)

        with self._size_lock:
            self._total_bytes += size - old_size
            self._evict_locked()
        return True

    def invalidate(self, paths: Iterable[Path | str]) -> int:
        """Delete every entry that recorded any of ``paths``. Returns the count."""
        targets = {self._normalize(p) for p in paths}
        if not targets:
            return 0
        with self._db.session() as session:
            rows = session.exec(
                select(
                    CacheEntryRow.provider_name,
                    CacheEntryRow.key,
                    CacheEntryRow.dependency_hashes_json,
                )
            ).all()

        doomed: list[tuple[str, str]] = []
        for provider_name, key, deps_json in rows:
            try:
                pairs = decode_dependency_hashes(deps_json, key=key, provider_name=provider_name)
                recorded = {path for path, _ in pairs}
            except CacheCorruptionError:
                recorded = targets  # unreadable rows go too
            if recorded & targets:
                doomed.append((provider_name, key))

        removed = 0
        for provider_name, key in doomed:
            with self._key_locks.hold(self._lock_key(provider_name, key)):
                removed += int(self._remove(provider_name, key))
        if removed:
            log.info("cache.invalidated", entries=removed, paths=len(targets))
        return removed

    def delete(self, key: str, provider_name: str) -> bool:
        with self._key_locks.hold(self._lock_key(provider_name, key)):
            return self._remove(provider_name, key)

    def clear(self) -> None:
        with self._size_lock:
            with self._db.immediate_transaction() as session:
                session.execute(text("DELETE FROM cache_entries"))
            self._total_bytes = 0
        log.info("cache.cleared")

    def stats(self) -> CacheStats:
        with self._db.session() as session:
            entries = session.exec(select(func.count()).select_from(CacheEntryRow)).one()
        with self._size_lock:
            total = self._total_bytes
        with self._stats_lock:
            return CacheStats(
                entries=int(entries),
                total_bytes=total,
                max_bytes=self.max_bytes,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def close(self) -> None:
        self._db.dispose()

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _lock_key(provider_name: str, key: str) -> str:
        return f"{provider_name}\0{key}"

    def _normalize(self, path: Path | str) -> str:
        """Repo-relative POSIX form; paths outside the root stay absolute."""
        candidate = Path(path)
        if candidate.is_absolute():
            resolved = candidate.resolve()
            try:
                return resolved.relative_to(self.root).as_posix()
            except ValueError:
                return resolved.as_posix()
        return candidate.as_posix()

    def _current_hash(self, rel: str) -> str | None:
        target = Path(rel)
        if not target.is_absolute():
            target = self.root / target
        try:
            return hash_file(target)
        except OSError:
            return None

    def _stamp(self, paths: Iterable[Path | str]) -> list[tuple[str, str]]:
        stamped: dict[str, str] = {}
        for path in paths:
            rel = self._normalize(path)
            if rel in stamped:
                continue
            digest = self._current_hash(rel)
            if digest is None:
                log.warning("cache.dependency_missing", path=rel)
                continue
            stamped[rel] = digest
        return list(stamped.items())

    def _stale_reason(
        self, recorded: list[tuple[str, str]], requested: list[str]
    ) -> tuple[str, bool] | None:
        """``(reason, purge)`` when the entry must not be served, else None."""
        recorded_paths = {path for path, _ in recorded}
        for rel in requested:
            if rel not in recorded_paths:
                return f"unrecorded dependency {rel}", True
        changed: str | None = None
        for rel, digest in recorded:
            current = self._current_hash(rel)
            if current is None:
                return f"missing dependency {rel}", True
            if current != digest and changed is None:
                changed = rel
        if changed is not None:
            return f"changed dependency {changed}", False
        return None

    def _remove(self, provider_name: str, key: str) -> bool:
        """Delete one entry and release its bytes. Caller holds the key lock."""
        with self._db.immediate_transaction() as session:
            existing = session.get(CacheEntryRow, (provider_name, key))
            if existing is None:
                return False
            freed = existing.size_bytes
            session.delete(existing)
        with self._size_lock:
            self._total_bytes -= freed
        return True

    def _evict_locked(self) -> None:
        """Drop least-recently-used entries until under budget. Caller holds the size lock."""
        if self._total_bytes <= self.max_bytes:
            return
        freed = 0
        evicted = 0
        with self._db.immediate_transaction() as session:
            candidates = session.exec(
                select(CacheEntryRow.provider_name, CacheEntryRow.key, CacheEntryRow.size_bytes).order_by(
                    CacheEntryRow.last_access, CacheEntryRow.inserted_seq
                )
            ).all()
            for provider_name, key, size in candidates:
                if self._total_bytes - freed <= self.max_bytes:
                    break
                session.execute(
                    text(
                        "DELETE FROM cache_entries WHERE provider_name = :provider AND key = :key"
                    ).bindparams(provider=provider_name, key=key)
                )
                freed += size
                evicted += 1
                log.debug("cache.evicted", key=key, provider=provider_name, size_bytes=size)
        self._total_bytes -= freed
        with self._stats_lock:
            self._evictions += evicted

    def _next_tick(self) -> int:
        with self._tick_lock:
            self._last_tick = max(self._last_tick + 1, int(self._clock() * 1_000_000_000))
            return self._last_tick

    def _next_seq(self) -> int:
        with self._tick_lock:
            self._last_seq += 1
            return self._last_seq

    def _count(self, *, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1
