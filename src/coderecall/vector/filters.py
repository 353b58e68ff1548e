"""Conjunctive payload filters, translated to Qdrant conditions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from qdrant_client import models


@dataclass(frozen=True, slots=True)
class RangeBound:
    gt: float | None = None
    gte: float | None = None
    lt: float | None = None
    lte: float | None = None


@dataclass(frozen=True, slots=True)
class PayloadFilter:
    """Every condition must hold. There is no OR."""

    equals: dict[str, Any] = field(default_factory=dict)
    ranges: dict[str, RangeBound] = field(default_factory=dict)

    @classmethod
    def where(cls, **equals: Any) -> PayloadFilter:
        """Equality filter that drops ``None`` values."""
        return cls(equals={k: v for k, v in equals.items() if v is not None})

    @property
    def is_empty(self) -> bool:
        return not self.equals and not self.ranges

    def to_qdrant(self) -> models.Filter | None:
        if self.is_empty:
            return None
        must: list[models.Condition] = [
            models.FieldCondition(key=key, match=models.MatchValue(value=value))
            for key, value in self.equals.items()
        ]
        must.extend(
            models.FieldCondition(
                key=key,
                range=models.Range(gt=bound.gt, gte=bound.gte, lt=bound.lt, lte=bound.lte),
            )
            for key, bound in self.ranges.items()
        )
        return models.Filter(must=must)
