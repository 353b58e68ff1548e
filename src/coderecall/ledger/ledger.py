"""Relational example ledger with a best-effort vector projection.

Write order for a submission is embed, then relational row, then vector
upsert. The row is the source of truth: a vector failure is logged as a
consistency warning and never undoes the row. ``rebuild_vector_index``
replays rows into the vector index to repair any drift.
"""

from __future__ import annotations

import json
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import delete, desc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from coderecall.config.constants import RECENT_ERRORS_LIMIT
from coderecall.config.models import DatabaseConfig
from coderecall.core.errors import ConsistencyWarning, InvalidExampleError, StorageError
from coderecall.embedding.gateway import EmbeddingGateway
from coderecall.embedding.sparse import sparse_embed
from coderecall.ledger.models import (
    LEDGER_INDEXES,
    CodeExample,
    ExampleQuery,
    ExampleRecord,
    GroupBy,
    NewExample,
    Order,
    now_ms,
)
from coderecall.storage.database import Database
from coderecall.vector.index import VectorIndex, VectorPoint

log = structlog.get_logger()

_TABLE = "code_examples"
_DAY_MS = 24 * 60 * 60 * 1000
_REBUILD_PAGE = 500


@contextmanager
def _storage_errors(*, write: bool) -> Generator[None, None, None]:
    try:
        yield
    except SQLAlchemyError as e:
        if write:
            raise StorageError.write_failed(_TABLE, str(e)) from e
        raise StorageError.read_failed(_TABLE, str(e)) from e


class ExampleLedger:
    """Durable store of code examples plus the vector projection."""

    def __init__(
        self,
        db: Database,
        gateway: EmbeddingGateway,
        vector_index: VectorIndex | None = None,
    ) -> None:
        self._db = db
        self._gateway = gateway
        self._vectors = vector_index
        db.create_all([CodeExample], LEDGER_INDEXES)

    @classmethod
    def open(
        cls,
        db_path: Path,
        gateway: EmbeddingGateway,
        vector_index: VectorIndex | None = None,
        db_config: DatabaseConfig | None = None,
    ) -> ExampleLedger:
        return cls(Database(db_path, db_config), gateway, vector_index)

    @property
    def vector_index(self) -> VectorIndex | None:
        return self._vectors

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(example: NewExample) -> None:
        for name in ("task", "code", "language", "tool"):
            if not getattr(example, name).strip():
                raise InvalidExampleError.missing_field(name)

    async def insert(self, example: NewExample) -> int:
        """Store an example and return its id.

        Raises:
            InvalidExampleError: required field empty; nothing was written.
            EmbeddingError: the task could not be embedded; nothing was written.
            StorageError: the relational write failed.
        """
        self._validate(example)
        embedding = await self._gateway.embed(example.task)

        row = CodeExample(
            task=example.task,
            code=example.code,
            language=example.language,
            framework=example.framework,
            tool=example.tool,
            success=example.success,
            embedding=json.dumps(embedding.vector),
            error_message=example.error_message,
            error_type=example.error_type,
        )
        with _storage_errors(write=True), self._db.immediate_transaction() as session:
            session.add(row)
            session.flush()
            record = ExampleRecord.from_row(row)

        log.info(
            "ledger.example_stored",
            example_id=record.id,
            tool=record.tool,
            language=record.language,
            success=record.success,
            tokens=embedding.token_count,
        )
        await self._sync_vector(record, embedding.vector)
        return record.id

    async def _sync_vector(self, record: ExampleRecord, vector: list[float]) -> bool:
        if self._vectors is None:
            return False
        try:
            await self._vectors.upsert(
                record.id,
                vector,
                sparse=sparse_embed(record.task),
                payload=record.payload(),
            )
        except Exception as e:
            warning = ConsistencyWarning.vector_sync_failed(record.id, str(e))
            log.warning("ledger.vector_sync_failed", **warning.to_dict())
            return False
        return True

    async def delete(self, example_id: int) -> bool:
        with _storage_errors(write=True), self._db.immediate_transaction() as session:
            row = session.get(CodeExample, example_id)
            if row is None:
                return False
            session.delete(row)

        if self._vectors is not None:
            try:
                await self._vectors.delete(example_id)
            except Exception as e:
                warning = ConsistencyWarning.vector_sync_failed(example_id, str(e))
                log.warning("ledger.vector_delete_failed", **warning.to_dict())
        return True

    async def delete_older_than(self, days: int = 30) -> int:
        """Delete examples older than ``days``; returns relational rows removed.

        Vector copies are purged best-effort with the same cutoff.
        """
        cutoff = now_ms() - days * _DAY_MS
        with _storage_errors(write=True), self._db.immediate_transaction() as session:
            result = session.execute(delete(CodeExample).where(col(CodeExample.timestamp) < cutoff))
            removed = int(result.rowcount or 0)

        if self._vectors is not None:
            try:
                await self._vectors.delete_older_than(cutoff)
            except Exception as e:
                log.warning("ledger.vector_prune_failed", cutoff_ms=cutoff, error=str(e))

        log.info("ledger.pruned", removed=removed, days=days)
        return removed

    async def rebuild_vector_index(self) -> int:
        """Replay every stored row into the vector index using stored embeddings."""
        if self._vectors is None:
            return 0

        replayed = 0
        last_id = 0
        while True:
            with _storage_errors(write=False), self._db.session() as session:
                rows = session.exec(
                    select(CodeExample)
                    .where(col(CodeExample.id) > last_id)
                    .order_by(col(CodeExample.id))
                    .limit(_REBUILD_PAGE)
                ).all()
                records = [ExampleRecord.from_row(r, with_embedding=True) for r in rows]
            if not records:
                break

            points = [
                VectorPoint(
                    id=r.id,
                    dense=r.embedding or [],
                    sparse=sparse_embed(r.task),
                    payload=r.payload(),
                )
                for r in records
            ]
            await self._vectors.upsert_batch(points)
            replayed += len(points)
            last_id = records[-1].id

        log.info("ledger.vectors_rebuilt", count=replayed)
        return replayed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_filters(stmt: Any, filters: ExampleQuery) -> Any:
        if filters.tool is not None:
            stmt = stmt.where(CodeExample.tool == filters.tool)
        if filters.language is not None:
            stmt = stmt.where(CodeExample.language == filters.language)
        if filters.framework is not None:
            stmt = stmt.where(CodeExample.framework == filters.framework)
        if filters.success is not None:
            stmt = stmt.where(CodeExample.success == filters.success)
        if filters.error_type is not None:
            stmt = stmt.where(CodeExample.error_type == filters.error_type)
        if filters.since_ms is not None:
            stmt = stmt.where(col(CodeExample.timestamp) >= filters.since_ms)
        return stmt

    def get(self, example_id: int, *, with_embedding: bool = False) -> ExampleRecord | None:
        with _storage_errors(write=False), self._db.session() as session:
            row = session.get(CodeExample, example_id)
            return ExampleRecord.from_row(row, with_embedding=with_embedding) if row else None

    def query(
        self,
        filters: ExampleQuery | None = None,
        *,
        limit: int = 100,
        order: Order = "newest",
        with_embedding: bool = False,
    ) -> list[ExampleRecord]:
        stmt = self._apply_filters(select(CodeExample), filters or ExampleQuery())
        if order == "newest":
            stmt = stmt.order_by(desc(CodeExample.timestamp), desc(CodeExample.id))
        else:
            stmt = stmt.order_by(col(CodeExample.timestamp), col(CodeExample.id))
        with _storage_errors(write=False), self._db.session() as session:
            rows = session.exec(stmt.limit(limit)).all()
            return [ExampleRecord.from_row(r, with_embedding=with_embedding) for r in rows]

    def recent_failures(
        self,
        *,
        tool: str | None = None,
        language: str | None = None,
        error_type: str | None = None,
        limit: int = 100,
    ) -> list[ExampleRecord]:
        """Newest failed examples, embeddings included."""
        return self.query(
            ExampleQuery(tool=tool, language=language, error_type=error_type, success=False),
            limit=limit,
            with_embedding=True,
        )

    def count(self, filters: ExampleQuery | None = None) -> int:
        stmt = self._apply_filters(select(func.count()).select_from(CodeExample), filters or ExampleQuery())
        with _storage_errors(write=False), self._db.session() as session:
            return int(session.exec(stmt).one())

    def aggregate_counts(
        self,
        group_by: GroupBy,
        filters: ExampleQuery | None = None,
    ) -> dict[str, int]:
        """Row counts per distinct value of ``group_by``; NULL groups as 'unknown'."""
        column = getattr(CodeExample, group_by)
        key = func.coalesce(column, "unknown")
        stmt = self._apply_filters(
            select(key, func.count()).select_from(CodeExample), filters or ExampleQuery()
        ).group_by(key)
        with _storage_errors(write=False), self._db.session() as session:
            return {str(value): int(n) for value, n in session.exec(stmt).all()}

    def stats(self) -> dict[str, Any]:
        """Counts over successful examples."""
        successes = ExampleQuery(success=True)
        return {
            "total": self.count(successes),
            "by_tool": self.aggregate_counts("tool", successes),
            "by_language": self.aggregate_counts("language", successes),
        }

    def error_stats(self) -> dict[str, Any]:
        failures = ExampleQuery(success=False)
        recent = self.query(failures, limit=RECENT_ERRORS_LIMIT)
        return {
            "total_errors": self.count(failures),
            "by_error_type": self.aggregate_counts("error_type", failures),
            "by_language": self.aggregate_counts("language", failures),
            "recent_errors": [
                {
                    "id": r.id,
                    "task": r.task,
                    "tool": r.tool,
                    "language": r.language,
                    "error_type": r.error_type,
                    "error_message": r.error_message,
                    "timestamp": r.timestamp.isoformat(),
                }
                for r in recent
            ],
        }

    def close(self) -> None:
        self._db.dispose()
