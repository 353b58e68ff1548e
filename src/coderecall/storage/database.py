"""SQLite access shared by the example ledger and the chunk store.

Every database file is opened in WAL mode so readers never block the single
writer. Three ways in:

- ``session()``: plain ORM session for reads and incidental writes
- ``immediate_transaction()``: ORM session holding the write lock from the
  first statement (``BEGIN IMMEDIATE``), retried while SQLite reports busy
- ``bulk_writer()``: Core statements on one connection and one transaction,
  used where a group of deletes and inserts must land together
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

from coderecall.config.models import DatabaseConfig

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine, Table

log = structlog.get_logger()

MAX_LOCK_RETRY_DELAY_SEC = 2.0

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA cache_size=-64000",  # KiB
    "PRAGMA foreign_keys=ON",
)


def _is_database_locked_error(error: Exception) -> bool:
    message = str(error).lower()
    return "database is locked" in message or "database is busy" in message


def _table(model: type[SQLModel]) -> Table:
    return model.__table__  # type: ignore[attr-defined,no-any-return]


class Database:
    """One SQLite file behind a SQLAlchemy engine."""

    def __init__(self, db_path: Path, config: DatabaseConfig | None = None) -> None:
        self.db_path = db_path
        self._config = config or DatabaseConfig()
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine: Engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        event.listen(self.engine, "connect", self._on_connect)

    def _on_connect(self, dbapi_conn: Any, _record: Any) -> None:
        cursor = dbapi_conn.cursor()
        try:
            for pragma in _PRAGMAS:
                cursor.execute(pragma)
            cursor.execute(f"PRAGMA busy_timeout={int(self._config.busy_timeout_ms)}")
        finally:
            cursor.close()

    def create_all(self, models: Sequence[type[SQLModel]], indexes: Sequence[str] = ()) -> None:
        """Create missing tables for ``models`` and run extra index DDL."""
        SQLModel.metadata.create_all(self.engine, tables=[_table(m) for m in models])
        if not indexes:
            return
        with self.engine.begin() as conn:
            for ddl in indexes:
                conn.execute(text(ddl))

    @contextmanager
    def session(self) -> Iterator[Session]:
        with Session(self.engine) as session:
            yield session

    def _begin_immediate(self, retries: int) -> Session:
        attempt = 0
        while True:
            session = Session(self.engine)
            try:
                session.execute(text("BEGIN IMMEDIATE"))
                return session
            except OperationalError as e:
                session.close()
                if attempt >= retries or not _is_database_locked_error(e):
                    raise
                delay = min(self._config.retry_base_delay_sec * 2**attempt, MAX_LOCK_RETRY_DELAY_SEC)
                attempt += 1
                log.warning("database.busy_retry", path=str(self.db_path), attempt=attempt, delay_sec=delay)
                # Blocks the calling thread like busy_timeout does; bounded by retries
                time.sleep(delay)

    @contextmanager
    def immediate_transaction(self, max_retries: int | None = None) -> Iterator[Session]:
        """Session that owns the write lock. Commits on exit, rolls back on error."""
        retries = self._config.max_retries if max_retries is None else max_retries
        session = self._begin_immediate(retries)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def bulk_writer(self) -> Iterator[BulkWriter]:
        """Core-level writer; everything it does commits or rolls back together."""
        with self.engine.begin() as conn:
            yield BulkWriter(conn)

    def dispose(self) -> None:
        self.engine.dispose()


class BulkWriter:
    """Multi-row statements on a connection with an open transaction."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def insert_many(self, model: type[SQLModel], rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        self._conn.execute(_table(model).insert(), rows)
        return len(rows)

    def upsert_many(
        self,
        model: type[SQLModel],
        rows: list[dict[str, Any]],
        conflict_columns: list[str],
        update_columns: list[str],
    ) -> int:
        """Insert ``rows``; on a key conflict overwrite ``update_columns``."""
        if not rows:
            return 0
        stmt = sqlite_insert(_table(model))
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_columns,
            set_={name: stmt.excluded[name] for name in update_columns},
        )
        self._conn.execute(stmt, rows)
        return len(rows)

    def delete_where(self, model: type[SQLModel], condition: str, params: dict[str, Any]) -> int:
        """Delete rows matching a SQL ``condition``. Returns the affected count."""
        result = self._conn.execute(text(f"DELETE FROM {_table(model).name} WHERE {condition}"), params)
        return int(result.rowcount)

    def scalar(self, sql: str, params: dict[str, Any]) -> Any:
        """First column of the first row, read inside the writer's transaction."""
        return self._conn.execute(text(sql), params).scalar()
