"""SQLite access shared by the unit store and the result cache.

Each ``Database`` owns one file and the subset of SQLModel tables that live
in it. Reads use a plain session; every write goes through
``immediate_transaction`` so it either commits whole or not at all.
"""

from __future__ import annotations

import time
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

log = structlog.get_logger()

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=30000",
    "PRAGMA synchronous=NORMAL",
)


def _apply_pragmas(dbapi_conn: Any, _record: Any) -> None:
    cursor = dbapi_conn.cursor()
    for pragma in _PRAGMAS:
        cursor.execute(pragma)
    cursor.close()


def _is_busy(error: OperationalError) -> bool:
    message = str(error).lower()
    return "database is locked" in message or "database is busy" in message


class Database:
    """One SQLite file in WAL mode."""

    def __init__(
        self,
        db_path: Path,
        tables: Sequence[type[SQLModel]],
        *,
        busy_retries: int = 3,
        backoff_base: float = 0.1,
        backoff_cap: float = 2.0,
    ) -> None:
        self.db_path = db_path
        self._tables = [model.__table__ for model in tables]  # type: ignore[attr-defined]
        self._busy_retries = busy_retries
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(
            f"sqlite:///{db_path}", connect_args={"check_same_thread": False}
        )
        event.listen(self.engine, "connect", _apply_pragmas)

    def create_all(self) -> None:
        SQLModel.metadata.create_all(self.engine, tables=self._tables)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def immediate_transaction(self) -> Generator[Session, None, None]:
        """Write session opened with BEGIN IMMEDIATE.

        The write lock is taken up front, so two writers never interleave.
        Failing to get it because another process holds it is retried with
        capped exponential backoff. The body commits on normal exit and rolls
        back on any exception.
        """
        attempt = 0
        while True:
            session = Session(self.engine)
            try:
                session.execute(text("BEGIN IMMEDIATE"))
                break
            except OperationalError as e:
                session.close()
                if not _is_busy(e) or attempt >= self._busy_retries:
                    raise
                delay = min(self._backoff_base * 2**attempt, self._backoff_cap)
                attempt += 1
                log.warning("db.busy_retry", path=str(self.db_path), attempt=attempt, delay_s=delay)
                time.sleep(delay)

        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Close pooled connections; required before the file is deleted."""
        self.engine.dispose()
