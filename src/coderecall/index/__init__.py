"""Embeddable unit index.

Public API is in ``coderecall.index.ops``:
- CodebaseIndexer: build, persist and query the index of one repository

Data model in ``coderecall.index.models``. Internal implementations
(parsers, ignore rules, SQLite store) are in ``coderecall.index._internal``.
"""

from coderecall.index.models import (
    BuildReport,
    EmbeddableUnit,
    FileRecord,
    Index,
    IndexStats,
    SearchFilters,
    SearchHit,
    UnitKind,
    UnitMetadata,
)
from coderecall.index.ops import CodebaseIndexer

__all__ = [
    "CodebaseIndexer",
    "BuildReport",
    "EmbeddableUnit",
    "FileRecord",
    "Index",
    "IndexStats",
    "SearchFilters",
    "SearchHit",
    "UnitKind",
    "UnitMetadata",
]
