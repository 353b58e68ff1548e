"""Embedding gateway: one entry point over exactly one active backend."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import structlog

from coderecall.config.models import EmbeddingConfig
from coderecall.core.errors import ProviderError
from coderecall.embedding.local import LocalEmbeddingBackend
from coderecall.embedding.models import (
    EmbeddingResult,
    EmbedOptions,
    HybridEmbedding,
    SparseVector,
)
from coderecall.embedding.remote import RemoteEmbeddingBackend
from coderecall.embedding.sparse import sparse_embed

log = structlog.get_logger()


class EmbeddingBackend(Protocol):
    name: str
    model_id: str
    dimensions: int

    async def embed_batch(
        self, texts: list[str], options: EmbedOptions | None = None
    ) -> list[EmbeddingResult]: ...

    async def aclose(self) -> None: ...


class EmbeddingGateway:
    """Converts text into dense and sparse vectors.

    Safe to share across coroutines. Errors from the backend propagate
    unchanged: ``ConfigurationError``, ``TransientProviderError`` (after
    retries) or ``ProviderError``.
    """

    def __init__(self, backend: EmbeddingBackend) -> None:
        self._backend = backend

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> EmbeddingGateway:
        backend: EmbeddingBackend
        if config.backend == "local":
            backend = LocalEmbeddingBackend(config)
        else:
            backend = RemoteEmbeddingBackend(config)
        log.debug(
            "embedding.gateway_created",
            backend=backend.name,
            model=backend.model_id,
            dimensions=backend.dimensions,
        )
        return cls(backend)

    @property
    def backend_name(self) -> str:
        return self._backend.name

    @property
    def model_id(self) -> str:
        return self._backend.model_id

    @property
    def dimensions(self) -> int:
        return self._backend.dimensions

    async def embed(self, text: str, options: EmbedOptions | None = None) -> EmbeddingResult:
        results = await self.embed_batch([text], options)
        return results[0]

    async def embed_batch(
        self, texts: Sequence[str], options: EmbedOptions | None = None
    ) -> list[EmbeddingResult]:
        """Embed many texts; output order matches input order."""
        if not texts:
            return []
        results = await self._backend.embed_batch(list(texts), options)
        if len(results) != len(texts):
            raise ProviderError.bad_response(
                "backend returned wrong number of embeddings",
                expected=len(texts),
                received=len(results),
            )
        log.debug(
            "embedding.batch_embedded",
            count=len(results),
            tokens=sum(r.token_count for r in results),
            model=results[0].model_id,
        )
        return results

    def embed_sparse(self, text: str) -> SparseVector:
        return sparse_embed(text)

    async def embed_hybrid(self, text: str, options: EmbedOptions | None = None) -> HybridEmbedding:
        dense = await self.embed(text, options)
        return HybridEmbedding(dense=dense, sparse=sparse_embed(text))

    async def aclose(self) -> None:
        await self._backend.aclose()
