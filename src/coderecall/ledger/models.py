"""Example ledger schema and domain records."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from sqlmodel import Field, SQLModel


def now_ms() -> int:
    return int(time.time() * 1000)


class CodeExample(SQLModel, table=True):
    """Task/solution pair, successful or failed. Source of truth for examples."""

    __tablename__ = "code_examples"

    id: int | None = Field(default=None, primary_key=True)
    task: str
    code: str
    language: str = Field(index=True)
    framework: str | None = None
    tool: str = Field(index=True)
    success: bool = Field(index=True)
    embedding: str  # JSON array of floats
    timestamp: int = Field(default_factory=now_ms)  # epoch ms, UTC
    error_message: str | None = None
    error_type: str | None = Field(default=None, index=True)


# Index that Field(index=True) cannot express: newest-first scans
LEDGER_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_code_examples_timestamp ON code_examples(timestamp DESC)",
]


@dataclass(frozen=True, slots=True)
class NewExample:
    """Submission payload; validated before anything is embedded."""

    task: str
    code: str
    language: str
    tool: str
    success: bool = True
    framework: str | None = None
    error_message: str | None = None
    error_type: str | None = None


@dataclass(frozen=True, slots=True)
class ExampleRecord:
    id: int
    task: str
    code: str
    language: str
    tool: str
    success: bool
    timestamp_ms: int
    framework: str | None = None
    error_message: str | None = None
    error_type: str | None = None
    embedding: list[float] | None = field(default=None, repr=False)

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_ms / 1000, tz=UTC)

    @classmethod
    def from_row(cls, row: CodeExample, *, with_embedding: bool = False) -> ExampleRecord:
        assert row.id is not None
        return cls(
            id=row.id,
            task=row.task,
            code=row.code,
            language=row.language,
            tool=row.tool,
            success=row.success,
            timestamp_ms=row.timestamp,
            framework=row.framework,
            error_message=row.error_message,
            error_type=row.error_type,
            embedding=json.loads(row.embedding) if with_embedding else None,
        )

    def payload(self) -> dict[str, Any]:
        """Denormalized copy stored alongside the vector."""
        return {
            "task": self.task,
            "code": self.code,
            "language": self.language,
            "framework": self.framework,
            "tool": self.tool,
            "success": self.success,
            "timestamp": self.timestamp_ms,
            "error_type": self.error_type,
            "error_message": self.error_message,
        }


@dataclass(frozen=True, slots=True)
class ExampleQuery:
    """Conjunctive filter over ledger rows; ``None`` means unconstrained."""

    tool: str | None = None
    language: str | None = None
    framework: str | None = None
    success: bool | None = None
    error_type: str | None = None
    since_ms: int | None = None


Order = Literal["newest", "oldest"]
GroupBy = Literal["tool", "language", "framework", "error_type"]
