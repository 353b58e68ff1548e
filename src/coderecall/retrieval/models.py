"""Retrieval result types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from coderecall.ledger.models import ExampleRecord


@dataclass(frozen=True, slots=True)
class RetrievalResult:
    example: ExampleRecord
    similarity: float


def record_from_payload(point_id: int | str, payload: dict[str, Any]) -> ExampleRecord:
    """Rebuild an example from the denormalized copy held by the vector index."""
    return ExampleRecord(
        id=int(point_id),
        task=str(payload.get("task", "")),
        code=str(payload.get("code", "")),
        language=str(payload.get("language", "")),
        tool=str(payload.get("tool", "")),
        success=bool(payload.get("success", True)),
        timestamp_ms=int(payload.get("timestamp", 0)),
        framework=payload.get("framework"),
        error_message=payload.get("error_message"),
        error_type=payload.get("error_type"),
    )
