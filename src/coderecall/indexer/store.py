"""SQLite persistence for code chunks, indexed files and index statistics."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any

import numpy as np
import structlog
from sqlalchemy import func
from sqlmodel import col, select

from coderecall.config.models import DatabaseConfig
from coderecall.indexer.models import (
    ChunkRecord,
    CodeChunk,
    IndexedFile,
    IndexStats,
    IndexStatsRow,
)
from coderecall.storage.database import Database

log = structlog.get_logger()


def encode_embedding(vector: list[float] | np.ndarray) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def decode_embedding(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


class ChunkStore:
    """Chunk rows grouped by file; a file's chunk set is replaced as a whole."""

    def __init__(self, db: Database) -> None:
        self._db = db
        db.create_all([CodeChunk, IndexedFile, IndexStatsRow])
        with self._db.immediate_transaction() as session:
            if session.get(IndexStatsRow, 1) is None:
                session.add(IndexStatsRow(id=1))

    @classmethod
    def open(cls, db_path: Path, db_config: DatabaseConfig | None = None) -> ChunkStore:
        return cls(Database(db_path, db_config))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def file_mtime(self, file_path: str) -> float | None:
        """Stored mtime (epoch ms) of an indexed file, or None if never indexed."""
        with self._db.session() as session:
            row = session.get(IndexedFile, file_path)
            return row.last_modified if row else None

    def replace_file(
        self,
        *,
        file_path: str,
        relative_path: str,
        language: str,
        last_modified: float,
        chunks: list[dict[str, Any]],
    ) -> bool:
        """Swap a file's chunk set and its mtime record in one transaction.

        Returns False without writing when the stored mtime is already newer.
        """
        now = time.time() * 1000
        with self._db.bulk_writer() as writer:
            stored = writer.scalar(
                "SELECT last_modified FROM indexed_files WHERE file_path = :fp", {"fp": file_path}
            )
            if stored is not None and stored > last_modified:
                log.debug("indexer.stale_replace_skipped", path=file_path, stored=stored, incoming=last_modified)
                return False
            writer.delete_where(CodeChunk, "file_path = :fp", {"fp": file_path})
            writer.insert_many(CodeChunk, chunks)
            writer.upsert_many(
                IndexedFile,
                [
                    {
                        "file_path": file_path,
                        "relative_path": relative_path,
                        "language": language,
                        "last_modified": last_modified,
                        "chunk_count": len(chunks),
                        "indexed_at": now,
                    }
                ],
                conflict_columns=["file_path"],
                update_columns=["relative_path", "language", "last_modified", "chunk_count", "indexed_at"],
            )
        return True

    def remove_file(self, file_path: str) -> bool:
        """Forget a file. Returns True if anything was stored for it."""
        with self._db.bulk_writer() as writer:
            chunks = writer.delete_where(CodeChunk, "file_path = :fp", {"fp": file_path})
            files = writer.delete_where(IndexedFile, "file_path = :fp", {"fp": file_path})
        return bool(chunks or files)

    def tracked_files(self) -> set[str]:
        with self._db.session() as session:
            return set(session.exec(select(IndexedFile.file_path)).all())

    def count_files(self) -> int:
        with self._db.session() as session:
            return int(session.exec(select(func.count()).select_from(IndexedFile)).one())

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def count_chunks(self) -> int:
        with self._db.session() as session:
            return int(session.exec(select(func.count()).select_from(CodeChunk)).one())

    def chunks_for_file(self, file_path: str) -> list[ChunkRecord]:
        with self._db.session() as session:
            rows = session.exec(
                select(CodeChunk)
                .where(CodeChunk.file_path == file_path)
                .order_by(col(CodeChunk.start_line))
            ).all()
            return [ChunkRecord.from_row(r) for r in rows]

    def load_embeddings(self, language: str | None = None) -> list[tuple[ChunkRecord, np.ndarray]]:
        """Every chunk with its vector, optionally restricted to one language."""
        stmt = select(CodeChunk)
        if language is not None:
            stmt = stmt.where(CodeChunk.language == language)
        with self._db.session() as session:
            return [
                (ChunkRecord.from_row(row), decode_embedding(row.embedding))
                for row in session.exec(stmt).all()
            ]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def read_stats(self) -> IndexStats:
        with self._db.session() as session:
            row = session.get(IndexStatsRow, 1) or IndexStatsRow(id=1)
            return IndexStats(
                total_files=row.total_files,
                total_chunks=row.total_chunks,
                last_indexed=row.last_indexed,
                index_duration=row.index_duration,
            )

    def write_stats(
        self,
        *,
        total_files: int,
        total_chunks: int,
        last_indexed: int | None = None,
        index_duration: int | None = None,
    ) -> IndexStats:
        """Update the singleton row. Omitted timing fields keep their values."""
        with self._db.immediate_transaction() as session:
            row = session.get(IndexStatsRow, 1) or IndexStatsRow(id=1)
            row.total_files = total_files
            row.total_chunks = total_chunks
            if last_indexed is not None:
                row.last_indexed = last_indexed
            if index_duration is not None:
                row.index_duration = index_duration
            session.add(row)
            stats = IndexStats(
                total_files=row.total_files,
                total_chunks=row.total_chunks,
                last_indexed=row.last_indexed,
                index_duration=row.index_duration,
            )
        return stats

    def clear(self) -> None:
        with self._db.bulk_writer() as writer:
            writer.delete_where(CodeChunk, "1 = 1", {})
            writer.delete_where(IndexedFile, "1 = 1", {})
        self.write_stats(total_files=0, total_chunks=0)
        log.info("indexer.index_cleared")

    def close(self) -> None:
        self._db.dispose()
