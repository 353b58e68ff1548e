"""Cosine similarity helpers over numpy."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

import numpy as np

T = TypeVar("T")

_EPS = 1e-10


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine of the angle between two vectors, clamped to [-1, 1].

    A zero vector has no direction; its similarity to anything is 0.0.

    Raises:
        ValueError: vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    if va.shape != vb.shape:
        raise ValueError(f"Vector length mismatch: {va.shape[0]} vs {vb.shape[0]}")
    norm = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if norm < _EPS:
        return 0.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


def cosine_scores(query: Sequence[float] | np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine of ``query`` against every row of ``matrix``."""
    q = np.asarray(query, dtype=np.float32)
    m = np.asarray(matrix, dtype=np.float32)
    if m.size == 0:
        return np.zeros(0, dtype=np.float32)
    row_norms = np.maximum(np.linalg.norm(m, axis=1), _EPS)
    q_norm = max(float(np.linalg.norm(q)), _EPS)
    scores = (m @ q) / (row_norms * q_norm)
    return np.clip(scores, -1.0, 1.0)


def rank_by_similarity(
    query: Sequence[float] | np.ndarray,
    candidates: Sequence[tuple[T, Sequence[float] | np.ndarray]],
    *,
    top_k: int,
    threshold: float,
) -> list[tuple[T, float]]:
    """Rank ``(item, vector)`` pairs by cosine to ``query``.

    Keeps scores >= threshold, sorted descending with ties in input order,
    truncated to top_k. Candidates whose length differs from the query are
    skipped.
    """
    q = np.asarray(query, dtype=np.float32)
    kept: list[tuple[T, Any]] = [
        (item, vec) for item, vec in candidates if len(vec) == q.shape[0]
    ]
    if not kept or top_k <= 0:
        return []

    scores = cosine_scores(q, np.vstack([np.asarray(v, dtype=np.float32) for _, v in kept]))
    # Stable sort keeps input order for equal scores
    order = np.argsort(-scores, kind="stable")
    ranked: list[tuple[T, float]] = []
    for idx in order:
        score = float(scores[idx])
        if score < threshold:
            break
        ranked.append((kept[idx][0], score))
        if len(ranked) >= top_k:
            break
    return ranked
