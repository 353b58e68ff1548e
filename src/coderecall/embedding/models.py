"""Embedding value types plus the static model tables.

Dimensionality is a property of the model, looked up here and never measured
from a response: every vector the gateway hands out is checked against it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from coderecall.config.constants import COST_PRECISION
from coderecall.core.errors import ConfigurationError

# Vector length per model id. Provider-prefixed ids (openai/..., BAAI/...)
# also resolve by their bare name.
MODEL_DIMENSIONS: dict[str, int] = {
    # OpenAI
    "openai/text-embedding-3-large": 3072,
    "openai/text-embedding-3-small": 1536,
    "openai/text-embedding-ada-002": 1536,
    "openai/text-embedding-ada-001": 768,
    # Voyage
    "voyageai/voyage-3-large": 1024,
    "voyageai/voyage-3": 1024,
    "voyageai/voyage-2": 1024,
    "voyageai/voyage-code-2": 1536,
    # Cohere
    "cohere/embed-english-v3.0": 1024,
    "cohere/embed-multilingual-v3.0": 1024,
    "cohere/embed-english-v2.0": 4096,
    "cohere/embed-english-light-v2.0": 1024,
    # Local (fastembed)
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
    "nomic-ai/nomic-embed-text-v1.5": 768,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
}

# USD per input token
EMBEDDING_PRICING: dict[str, float] = {
    "openai/text-embedding-3-small": 0.02 / 1_000_000,
    "openai/text-embedding-3-large": 0.13 / 1_000_000,
    "openai/text-embedding-ada-002": 0.10 / 1_000_000,
}

_BARE_NAMES: dict[str, str] = {model_id.rsplit("/", 1)[-1]: model_id for model_id in MODEL_DIMENSIONS}


def canonical_model_id(model: str) -> str | None:
    """Resolve a model id (prefixed or bare) to its table key."""
    if model in MODEL_DIMENSIONS:
        return model
    return _BARE_NAMES.get(model.rsplit("/", 1)[-1])


def resolve_dimensions(model: str, override: int | None = None) -> int:
    """Vector length for a model.

    Raises:
        ConfigurationError: model is not in the table and no override is set.
    """
    if override is not None:
        return override
    key = canonical_model_id(model)
    if key is None:
        raise ConfigurationError.unknown_model(model)
    return MODEL_DIMENSIONS[key]


def estimate_cost(model: str, tokens: int) -> EmbeddingCost:
    """Cost of embedding ``tokens`` with ``model``; unknown models are free."""
    key = canonical_model_id(model)
    rate = EMBEDDING_PRICING.get(key, 0.0) if key else 0.0
    return EmbeddingCost(
        amount=round(tokens * rate, COST_PRECISION),
        input_tokens=tokens,
        rate_per_token=rate,
    )


@dataclass(frozen=True, slots=True)
class EmbeddingCost:
    amount: float
    input_tokens: int
    rate_per_token: float = 0.0
    currency: str = "USD"


@dataclass(frozen=True, slots=True)
class EmbeddingResult:
    """Dense embedding of one text."""

    vector: list[float]
    token_count: int
    model_id: str
    cost: EmbeddingCost | None = None

    @property
    def dimensions(self) -> int:
        return len(self.vector)


@dataclass(frozen=True, slots=True)
class EmbedOptions:
    """Per-call overrides. ``model`` applies to the remote backend only."""

    model: str | None = None
    dimensions: int | None = None


@dataclass(frozen=True, slots=True)
class SparseVector:
    """Hashed term weights: sorted unique indices, one value each."""

    indices: list[int] = field(default_factory=list)
    values: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.indices) != len(self.values):
            raise ValueError("indices and values must have the same length")

    @property
    def is_empty(self) -> bool:
        return not self.indices


@dataclass(frozen=True, slots=True)
class HybridEmbedding:
    dense: EmbeddingResult
    sparse: SparseVector
