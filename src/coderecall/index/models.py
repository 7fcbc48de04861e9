"""Data model of the embeddable unit index.

Two layers:
- Domain types (dataclasses): EmbeddableUnit, FileRecord, Index and the
  search/build result types handed to callers.
- SQLModel tables: the persisted form in ``<data_dir>/<repo_id>/index.db``.

Invariants:
- ``EmbeddableUnit.hash == hash_content(unit.content)``
- ``EmbeddableUnit.id == derive_unit_id(kind, source, symbol_name)``
- every unit belongs to exactly one FileRecord
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from sqlmodel import Field, SQLModel

# ============================================================================
# ENUMS
# ============================================================================


class UnitKind(str, Enum):
    """Granularity of an embeddable unit."""

    FILE = "file"
    FUNCTION = "function"
    CLASS = "class"
    SYMBOL = "symbol"


# ============================================================================
# DOMAIN TYPES
# ============================================================================


@dataclass(frozen=True)
class UnitMetadata:
    symbol_name: str | None = None
    language: str = "unknown"
    complexity: int = 0
    dependencies: frozenset[str] = frozenset()  # called / imported symbol names
    exports: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    last_modified: float = 0.0  # source file mtime (epoch seconds)

    def to_json(self) -> str:
        return json.dumps(
            {
                "symbol_name": self.symbol_name,
                "language": self.language,
                "complexity": self.complexity,
                "dependencies": sorted(self.dependencies),
                "exports": list(self.exports),
                "tags": list(self.tags),
                "last_modified": self.last_modified,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> UnitMetadata:
        data: dict[str, Any] = json.loads(raw)
        return cls(
            symbol_name=data.get("symbol_name"),
            language=data.get("language", "unknown"),
            complexity=int(data.get("complexity", 0)),
            dependencies=frozenset(data.get("dependencies", [])),
            exports=tuple(data.get("exports", [])),
            tags=tuple(data.get("tags", [])),
            last_modified=float(data.get("last_modified", 0.0)),
        )


@dataclass(frozen=True)
class EmbeddableUnit:
    """Smallest indexed artifact: a file, function, class or symbol."""

    id: str
    kind: UnitKind
    source: str  # repo-relative POSIX path
    start_line: int
    end_line: int
    content: str
    summary: str
    hash: str
    metadata: UnitMetadata = field(default_factory=UnitMetadata)
    vector: tuple[float, ...] | None = None

    @property
    def embedded(self) -> bool:
        return self.vector is not None

    @property
    def name(self) -> str:
        return self.metadata.symbol_name or self.source

    def with_vector(self, vector: tuple[float, ...] | None) -> EmbeddableUnit:
        return EmbeddableUnit(
            id=self.id,
            kind=self.kind,
            source=self.source,
            start_line=self.start_line,
            end_line=self.end_line,
            content=self.content,
            summary=self.summary,
            hash=self.hash,
            metadata=self.metadata,
            vector=vector,
        )


@dataclass(frozen=True)
class FileRecord:
    path: str
    hash: str
    language: str
    unit_ids: tuple[str, ...] = ()
    loc: int = 0
    last_modified: float = 0.0


@dataclass
class Index:
    """File → owned unit ids, plus the global id → unit map."""

    repo_id: str
    root: str
    files: dict[str, FileRecord] = field(default_factory=dict)
    units: dict[str, EmbeddableUnit] = field(default_factory=dict)

    def units_for(self, path: str) -> list[EmbeddableUnit]:
        record = self.files.get(path)
        if record is None:
            return []
        return [self.units[uid] for uid in record.unit_ids if uid in self.units]

    def put_file(self, record: FileRecord, units: list[EmbeddableUnit]) -> None:
        """Replace everything owned by ``record.path``."""
        self.drop_file(record.path)
        self.files[record.path] = record
        for unit in units:
            self.units[unit.id] = unit

    def drop_file(self, path: str) -> None:
        record = self.files.pop(path, None)
        if record is None:
            return
        for uid in record.unit_ids:
            self.units.pop(uid, None)

    @property
    def dimensions(self) -> int | None:
        for unit in self.units.values():
            if unit.vector is not None:
                return len(unit.vector)
        return None

    def __len__(self) -> int:
        return len(self.units)


@dataclass(frozen=True)
class SearchHit:
    unit: EmbeddableUnit
    score: float


@dataclass
class SearchFilters:
    """Optional narrowing applied before ranking. All given criteria must hold."""

    language: str | None = None
    kind: UnitKind | None = None
    file_pattern: str | None = None  # glob on the repo-relative path
    min_complexity: int | None = None
    max_complexity: int | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class BuildReport:
    """Outcome of one build_index / update_index run."""

    files_scanned: int = 0
    files_indexed: int = 0
    files_reused: int = 0
    files_removed: int = 0
    files_skipped: int = 0
    units_embedded: int = 0
    units_reused: int = 0
    embed_failures: int = 0
    warnings: list[str] = field(default_factory=list)
    cancelled: bool = False
    elapsed_ms: int = 0


@dataclass
class IndexStats:
    files: int
    units_by_kind: dict[str, int]
    languages: dict[str, int]
    embedded: int
    dimensions: int | None
    avg_complexity: float
    max_complexity: int


# ============================================================================
# TABLES
# ============================================================================


class FileRow(SQLModel, table=True):
    """Indexed file and the ids of the units it owns."""

    __tablename__ = "files"

    path: str = Field(primary_key=True)
    content_hash: str
    language: str
    loc: int = 0
    last_modified: float = 0.0
    unit_ids_json: str = "[]"

    def get_unit_ids(self) -> tuple[str, ...]:
        return tuple(json.loads(self.unit_ids_json))

    def to_record(self) -> FileRecord:
        return FileRecord(
            path=self.path,
            hash=self.content_hash,
            language=self.language,
            unit_ids=self.get_unit_ids(),
            loc=self.loc,
            last_modified=self.last_modified,
        )

    @classmethod
    def from_record(cls, record: FileRecord) -> FileRow:
        return cls(
            path=record.path,
            content_hash=record.hash,
            language=record.language,
            loc=record.loc,
            last_modified=record.last_modified,
            unit_ids_json=json.dumps(list(record.unit_ids)),
        )


class UnitRow(SQLModel, table=True):
    """One embeddable unit. Vectors are raw little-endian float64 bytes."""

    __tablename__ = "units"

    id: str = Field(primary_key=True)
    file_path: str = Field(index=True)
    kind: str = Field(index=True)
    symbol_name: str | None = Field(default=None, index=True)
    start_line: int
    end_line: int
    content: str
    summary: str
    content_hash: str
    vector: bytes | None = None
    dimensions: int | None = None
    metadata_json: str = "{}"

    def to_unit(self) -> EmbeddableUnit:
        vector: tuple[float, ...] | None = None
        if self.vector is not None:
            vector = tuple(np.frombuffer(self.vector, dtype="<f8").tolist())
        return EmbeddableUnit(
            id=self.id,
            kind=UnitKind(self.kind),
            source=self.file_path,
            start_line=self.start_line,
            end_line=self.end_line,
            content=self.content,
            summary=self.summary,
            hash=self.content_hash,
            metadata=UnitMetadata.from_json(self.metadata_json),
            vector=vector,
        )

    @classmethod
    def from_unit(cls, unit: EmbeddableUnit) -> UnitRow:
        blob: bytes | None = None
        if unit.vector is not None:
            blob = np.asarray(unit.vector, dtype="<f8").tobytes()
        return cls(
            id=unit.id,
            file_path=unit.source,
            kind=unit.kind.value,
            symbol_name=unit.metadata.symbol_name,
            start_line=unit.start_line,
            end_line=unit.end_line,
            content=unit.content,
            summary=unit.summary,
            content_hash=unit.hash,
            vector=blob,
            dimensions=len(unit.vector) if unit.vector is not None else None,
            metadata_json=unit.metadata.to_json(),
        )


class IndexMeta(SQLModel, table=True):
    """Key/value facts about the persisted index (format version, provider, ...)."""

    __tablename__ = "index_meta"

    key: str = Field(primary_key=True)
    value: str


INDEX_TABLES: list[type[SQLModel]] = [FileRow, UnitRow, IndexMeta]
