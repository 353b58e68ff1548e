"""Embedding gateway, backends and vector helpers."""

from coderecall.embedding.gateway import EmbeddingBackend, EmbeddingGateway
from coderecall.embedding.local import LocalEmbeddingBackend
from coderecall.embedding.models import (
    MODEL_DIMENSIONS,
    EmbeddingCost,
    EmbeddingResult,
    EmbedOptions,
    HybridEmbedding,
    SparseVector,
    estimate_cost,
    resolve_dimensions,
)
from coderecall.embedding.remote import RemoteEmbeddingBackend
from coderecall.embedding.similarity import cosine_similarity, rank_by_similarity
from coderecall.embedding.sparse import sparse_embed

__all__ = [
    "MODEL_DIMENSIONS",
    "EmbedOptions",
    "EmbeddingBackend",
    "EmbeddingCost",
    "EmbeddingGateway",
    "EmbeddingResult",
    "HybridEmbedding",
    "LocalEmbeddingBackend",
    "RemoteEmbeddingBackend",
    "SparseVector",
    "cosine_similarity",
    "estimate_cost",
    "rank_by_similarity",
    "resolve_dimensions",
    "sparse_embed",
]
