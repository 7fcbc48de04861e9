"""Persisted unit map in ``<data_dir>/<repo_id>/index.db``.

Each file is a checkpoint: ``save_file`` replaces a file's record and units
in one ``BEGIN IMMEDIATE`` transaction, so an interrupted build leaves every
file either fully old or fully new.
"""

from __future__ import annotations

import time
from pathlib import Path

import structlog
from sqlalchemy import text
from sqlmodel import select

from coderecall.config.constants import INDEX_FORMAT_VERSION
from coderecall.core.db import Database
from coderecall.index.models import (
    INDEX_TABLES,
    EmbeddableUnit,
    FileRecord,
    FileRow,
    Index,
    IndexMeta,
    UnitRow,
)

log = structlog.get_logger()


class UnitStore:
    """SQLite-backed storage of one repository's index."""

    def __init__(self, db_path: Path, *, repo_id: str, root: str) -> None:
        self.db_path = db_path
        self.repo_id = repo_id
        self.root = root
        self._db: Database | None = None

    @property
    def db(self) -> Database:
        if self._db is None:
            self._db = Database(self.db_path, tables=INDEX_TABLES)
            self._db.create_all()
        return self._db

    def load(self) -> Index:
        """Full unit map. An unknown format version discards every stored row and loads empty."""
        index = Index(repo_id=self.repo_id, root=self.root)
        if not self.db_path.exists():
            return index

        meta = self.read_meta()
        version = meta.get("format_version")
        if version is not None and version != str(INDEX_FORMAT_VERSION):
            log.warning(
                "index.format_mismatch",
                stored=version,
                expected=INDEX_FORMAT_VERSION,
                path=str(self.db_path),
            )
            self._drop_rows()
            return index

        with self.db.session() as session:
            for row in session.exec(select(FileRow)).all():
                index.files[row.path] = row.to_record()
            for unit_row in session.exec(select(UnitRow)).all():
                index.units[unit_row.id] = unit_row.to_unit()
        return index

    def _drop_rows(self) -> None:
        """Discard every stored row; old-format rows are never decoded."""
        with self.db.immediate_transaction() as session:
            for table in ("units", "files", "index_meta"):
                session.execute(text(f"DELETE FROM {table}"))

    def save_file(self, record: FileRecord, units: list[EmbeddableUnit]) -> None:
        """Replace ``record.path``'s previous units with ``units`` atomically."""
        with self.db.immediate_transaction() as session:
            session.execute(text("DELETE FROM units WHERE file_path = :p").bindparams(p=record.path))
            session.merge(FileRow.from_record(record))
            for unit in units:
                session.merge(UnitRow.from_unit(unit))

    def remove_file(self, path: str) -> None:
        with self.db.immediate_transaction() as session:
            session.execute(text("DELETE FROM units WHERE file_path = :p").bindparams(p=path))
            session.execute(text("DELETE FROM files WHERE path = :p").bindparams(p=path))

    def write_meta(self, **values: str | int | None) -> None:
        with self.db.immediate_transaction() as session:
            merged = {"format_version": INDEX_FORMAT_VERSION, "repo_id": self.repo_id, **values}
            merged.setdefault("built_at", int(time.time()))
            for key, value in merged.items():
                if value is None:
                    continue
                session.merge(IndexMeta(key=key, value=str(value)))

    def read_meta(self) -> dict[str, str]:
        if not self.db_path.exists():
            return {}
        with self.db.session() as session:
            return {row.key: row.value for row in session.exec(select(IndexMeta)).all()}

    def clear(self) -> None:
        """Delete the database file (and its WAL side files)."""
        self.close()
        for suffix in ("", "-wal", "-shm"):
            target = self.db_path.with_name(self.db_path.name + suffix)
            target.unlink(missing_ok=True)
        log.info("index.cleared", path=str(self.db_path))

    def close(self) -> None:
        if self._db is not None:
            self._db.dispose()
            self._db = None
