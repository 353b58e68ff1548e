"""Codebase index schema and value types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import CheckConstraint, Column, LargeBinary
from sqlmodel import Field, SQLModel

# Default extension → language mapping
LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
}


class FileOutcome(str, Enum):
    """Result of indexing one path."""

    INDEXED = "indexed"
    UNCHANGED = "unchanged"  # stored mtime is current
    UNSUPPORTED = "unsupported"  # extension, ignore rules or size
    REMOVED = "removed"  # vanished; stored chunks purged
    MISSING = "missing"  # vanished and never indexed
    FAILED = "failed"


class CodeChunk(SQLModel, table=True):
    """Contiguous region of a source file with its embedding."""

    __tablename__ = "code_chunks"

    id: str = Field(primary_key=True)  # "{relative_path}:{start}-{end}:{type}"
    file_path: str = Field(index=True)
    relative_path: str = Field(index=True)
    content: str
    start_line: int
    end_line: int
    chunk_type: str = Field(index=True)
    chunk_name: str | None = None
    language: str = Field(index=True)
    embedding: bytes = Field(sa_column=Column(LargeBinary, nullable=False))  # float32
    last_modified: float = Field(index=True)  # file mtime, epoch ms
    created_at: float


class IndexedFile(SQLModel, table=True):
    """Observed mtime of every indexed file, including files with no chunks."""

    __tablename__ = "indexed_files"

    file_path: str = Field(primary_key=True)
    relative_path: str = Field(index=True)
    language: str
    last_modified: float  # epoch ms
    chunk_count: int = 0
    indexed_at: float


class IndexStatsRow(SQLModel, table=True):
    """Singleton row with the outcome of the last pass."""

    __tablename__ = "index_stats"
    __table_args__ = (CheckConstraint("id = 1", name="ck_index_stats_singleton"),)

    id: int = Field(default=1, primary_key=True)
    total_files: int = 0
    total_chunks: int = 0
    last_indexed: int | None = None  # epoch ms of the last full pass
    index_duration: int = 0  # ms


@dataclass(frozen=True, slots=True)
class ChunkSpec:
    """Chunk boundaries produced by a chunker. Lines are 1-based, inclusive."""

    code: str
    start_line: int
    end_line: int
    type: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class ChunkRecord:
    id: str
    file_path: str
    relative_path: str
    content: str
    start_line: int
    end_line: int
    chunk_type: str
    language: str
    last_modified: float
    chunk_name: str | None = None

    @classmethod
    def from_row(cls, row: CodeChunk) -> ChunkRecord:
        return cls(
            id=row.id,
            file_path=row.file_path,
            relative_path=row.relative_path,
            content=row.content,
            start_line=row.start_line,
            end_line=row.end_line,
            chunk_type=row.chunk_type,
            language=row.language,
            last_modified=row.last_modified,
            chunk_name=row.chunk_name,
        )


@dataclass(frozen=True, slots=True)
class ChunkMatch:
    chunk: ChunkRecord
    similarity: float


@dataclass(frozen=True, slots=True)
class IndexStats:
    total_files: int
    total_chunks: int
    last_indexed: int | None
    index_duration: int

    def to_dict(self) -> dict[str, int | None]:
        return {
            "total_files": self.total_files,
            "total_chunks": self.total_chunks,
            "last_indexed": self.last_indexed,
            "index_duration": self.index_duration,
        }
