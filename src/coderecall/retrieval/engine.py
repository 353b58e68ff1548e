"""Similarity retrieval over the example ledger and its vector index.

Retrieval never raises: any failure is logged and yields no results, so a
caller building a prompt simply gets the prompt without examples.
"""

from __future__ import annotations

import structlog

from coderecall.config.models import RetrievalConfig
from coderecall.embedding.gateway import EmbeddingGateway
from coderecall.embedding.similarity import rank_by_similarity
from coderecall.ledger.ledger import ExampleLedger
from coderecall.retrieval import prompts
from coderecall.retrieval.models import RetrievalResult, record_from_payload
from coderecall.vector.filters import PayloadFilter
from coderecall.vector.index import VectorHit, VectorIndex

log = structlog.get_logger()


def _decode_hits(hits: list[VectorHit], *, kind: str) -> list[RetrievalResult]:
    """Turn index hits into results, skipping points this ledger did not write."""
    results: list[RetrievalResult] = []
    for hit in hits:
        try:
            record = record_from_payload(hit.id, hit.payload)
        except (TypeError, ValueError) as e:
            log.warning("retrieval.foreign_point_skipped", kind=kind, point_id=str(hit.id), error=str(e))
            continue
        results.append(RetrievalResult(record, hit.score))
    return results


class RetrievalEngine:
    def __init__(
        self,
        gateway: EmbeddingGateway,
        ledger: ExampleLedger,
        vector_index: VectorIndex | None = None,
        config: RetrievalConfig | None = None,
    ) -> None:
        self._gateway = gateway
        self._ledger = ledger
        self._vectors = vector_index if vector_index is not None else ledger.vector_index
        self._config = config or RetrievalConfig()

    async def retrieve_similar(
        self,
        query: str,
        *,
        tool: str | None = None,
        language: str | None = None,
        top_k: int | None = None,
        threshold: float | None = None,
    ) -> list[RetrievalResult]:
        """Successful examples most similar to ``query``, best first.

        Only hits scoring at least ``threshold`` are kept; at most ``top_k``.
        """
        top_k = self._config.top_k if top_k is None else top_k
        threshold = self._config.threshold if threshold is None else threshold
        if self._vectors is None or top_k <= 0:
            return []

        try:
            embedding = await self._gateway.embed(query)
            hits = await self._vectors.search_dense(
                embedding.vector,
                top_k,
                PayloadFilter.where(success=True, tool=tool, language=language),
            )
        except Exception as e:
            log.warning("retrieval.failed", kind="similar", error=str(e))
            return []

        results = _decode_hits([hit for hit in hits if hit.score >= threshold], kind="similar")
        # Stable sort keeps index order for equal scores
        results.sort(key=lambda r: r.similarity, reverse=True)
        log.debug("retrieval.similar", query_len=len(query), hits=len(hits), kept=len(results))
        return results[:top_k]

    async def retrieve_similar_failures(
        self,
        query: str,
        *,
        tool: str | None = None,
        language: str | None = None,
        error_type: str | None = None,
        top_k: int | None = None,
        threshold: float | None = None,
    ) -> list[RetrievalResult]:
        """Past failures similar to ``query``.

        Ranks the most recent ``failure_window`` failed examples in memory
        with cosine similarity, so it works without the vector index.
        """
        top_k = self._config.top_k if top_k is None else top_k
        threshold = self._config.threshold if threshold is None else threshold

        try:
            embedding = await self._gateway.embed(query)
            failures = self._ledger.recent_failures(
                tool=tool,
                language=language,
                error_type=error_type,
                limit=self._config.failure_window,
            )
            ranked = rank_by_similarity(
                embedding.vector,
                [(r, r.embedding or []) for r in failures],
                top_k=top_k,
                threshold=threshold,
            )
        except Exception as e:
            log.warning("retrieval.failed", kind="failures", error=str(e))
            return []

        return [RetrievalResult(record, score) for record, score in ranked]

    async def retrieve_hybrid(
        self,
        query: str,
        *,
        tool: str | None = None,
        language: str | None = None,
        top_k: int | None = None,
    ) -> list[RetrievalResult]:
        """Lexical plus semantic ranking via reciprocal rank fusion.

        Similarity values are fusion scores, so no cosine threshold applies.
        """
        top_k = self._config.top_k if top_k is None else top_k
        if self._vectors is None or top_k <= 0:
            return []

        try:
            hybrid = await self._gateway.embed_hybrid(query)
            hits = await self._vectors.search_hybrid(
                hybrid.dense.vector,
                hybrid.sparse,
                top_k,
                PayloadFilter.where(success=True, tool=tool, language=language),
            )
        except Exception as e:
            log.warning("retrieval.failed", kind="hybrid", error=str(e))
            return []

        return _decode_hits(hits, kind="hybrid")

    def augment_prompt(self, original: str, results: list[RetrievalResult]) -> str:
        return prompts.augment_prompt(original, results)

    def augment_with_error_warnings(self, original: str, results: list[RetrievalResult]) -> str:
        return prompts.augment_with_error_warnings(
            original, results, preview_chars=self._config.preview_chars
        )
