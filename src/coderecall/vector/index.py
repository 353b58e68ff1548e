"""Qdrant-backed vector similarity index.

Each point carries a named dense vector (cosine) and, when available, a
named sparse vector. Payloads are denormalized copies of relational rows;
the index can always be rebuilt from the ledger.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from qdrant_client import AsyncQdrantClient, models

from coderecall.config.models import VectorConfig
from coderecall.embedding.models import SparseVector
from coderecall.vector.filters import PayloadFilter

log = structlog.get_logger()

DENSE_VECTOR = "dense"
SPARSE_VECTOR = "sparse"

# Payload fields filtered on by retrieval and retention
_PAYLOAD_INDEXES: dict[str, models.PayloadSchemaType] = {
    "tool": models.PayloadSchemaType.KEYWORD,
    "language": models.PayloadSchemaType.KEYWORD,
    "error_type": models.PayloadSchemaType.KEYWORD,
    "success": models.PayloadSchemaType.BOOL,
    "timestamp": models.PayloadSchemaType.INTEGER,
}

PointId = int | str


@dataclass(frozen=True, slots=True)
class VectorHit:
    id: PointId
    score: float
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class VectorPoint:
    id: PointId
    dense: list[float]
    sparse: SparseVector | None = None
    payload: dict[str, Any] = field(default_factory=dict)


def create_client(config: VectorConfig) -> AsyncQdrantClient:
    """Client for a Qdrant server, or an embedded one when ``location`` is set."""
    if config.location:
        if config.location == ":memory:":
            return AsyncQdrantClient(location=":memory:")
        return AsyncQdrantClient(path=config.location)
    api_key = config.api_key.get_secret_value() if config.api_key else None
    return AsyncQdrantClient(url=config.url, api_key=api_key, timeout=config.timeout_sec)


class VectorIndex:
    """Approximate nearest-neighbor store keyed by example id."""

    def __init__(
        self,
        config: VectorConfig,
        dimensions: int,
        *,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        self._config = config
        self._dimensions = dimensions
        self._client = client or create_client(config)
        self._collection = config.collection
        self._ready = False
        self._ensure_lock = asyncio.Lock()
        self.hybrid_fallbacks = 0

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def ensure_collection(self) -> None:
        """Create the collection and its payload indexes if missing. Idempotent."""
        if self._ready:
            return
        async with self._ensure_lock:
            if self._ready:
                return
            if not await self._client.collection_exists(self._collection):
                await self._create_collection()
            self._ready = True

    async def _create_collection(self) -> None:
        await self._client.create_collection(
            collection_name=self._collection,
            vectors_config={
                DENSE_VECTOR: models.VectorParams(
                    size=self._dimensions,
                    distance=models.Distance.COSINE,
                    hnsw_config=models.HnswConfigDiff(
                        m=self._config.hnsw_m,
                        ef_construct=self._config.hnsw_ef_construct,
                    ),
                )
            },
            sparse_vectors_config={SPARSE_VECTOR: models.SparseVectorParams()},
            optimizers_config=models.OptimizersConfigDiff(
                indexing_threshold=self._config.indexing_threshold,
            ),
        )
        for field_name, schema in _PAYLOAD_INDEXES.items():
            await self._client.create_payload_index(
                collection_name=self._collection,
                field_name=field_name,
                field_schema=schema,
            )
        log.info(
            "vector.collection_created",
            collection=self._collection,
            dimensions=self._dimensions,
        )

    @staticmethod
    def _to_point(point: VectorPoint) -> models.PointStruct:
        vector: dict[str, Any] = {DENSE_VECTOR: point.dense}
        if point.sparse is not None and not point.sparse.is_empty:
            vector[SPARSE_VECTOR] = models.SparseVector(
                indices=point.sparse.indices, values=point.sparse.values
            )
        return models.PointStruct(id=point.id, vector=vector, payload=point.payload)

    def _check_dimensions(self, vector: Sequence[float]) -> None:
        if len(vector) != self._dimensions:
            raise ValueError(
                f"Vector has {len(vector)} dimensions, collection expects {self._dimensions}"
            )

    async def upsert(
        self,
        point_id: PointId,
        dense: list[float],
        sparse: SparseVector | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        await self.upsert_batch([VectorPoint(point_id, dense, sparse, payload or {})])

    async def upsert_batch(self, points: Sequence[VectorPoint]) -> None:
        """Insert or replace points in groups of ``upsert_batch_size``."""
        if not points:
            return
        for point in points:
            self._check_dimensions(point.dense)
        await self.ensure_collection()

        size = self._config.upsert_batch_size
        for start in range(0, len(points), size):
            batch = [self._to_point(p) for p in points[start : start + size]]
            await self._client.upsert(collection_name=self._collection, points=batch, wait=True)
        log.debug("vector.upserted", count=len(points), collection=self._collection)

    async def search_dense(
        self,
        vector: list[float],
        top_k: int,
        filter: PayloadFilter | None = None,
    ) -> list[VectorHit]:
        """Cosine search, best first."""
        self._check_dimensions(vector)
        await self.ensure_collection()
        response = await self._client.query_points(
            collection_name=self._collection,
            query=vector,
            using=DENSE_VECTOR,
            query_filter=filter.to_qdrant() if filter else None,
            limit=top_k,
            with_payload=True,
        )
        return [self._to_hit(p) for p in response.points]

    async def search_hybrid(
        self,
        dense: list[float],
        sparse: SparseVector | None,
        top_k: int,
        filter: PayloadFilter | None = None,
    ) -> list[VectorHit]:
        """Reciprocal rank fusion of sparse and dense candidate lists.

        Scores are fusion scores, not cosine similarities. Falls back to a
        dense search when there is no sparse vector or the fused query fails.
        """
        if sparse is None or sparse.is_empty:
            return await self._degrade(dense, top_k, filter, reason="no_sparse_vector")

        self._check_dimensions(dense)
        await self.ensure_collection()
        qfilter = filter.to_qdrant() if filter else None
        try:
            response = await self._client.query_points(
                collection_name=self._collection,
                prefetch=[
                    models.Prefetch(
                        query=models.SparseVector(indices=sparse.indices, values=sparse.values),
                        using=SPARSE_VECTOR,
                        limit=top_k * 2,
                        filter=qfilter,
                    ),
                    models.Prefetch(
                        query=dense,
                        using=DENSE_VECTOR,
                        limit=top_k * 2,
                        filter=qfilter,
                    ),
                ],
                query=models.FusionQuery(fusion=models.Fusion.RRF),
                limit=top_k,
                with_payload=True,
            )
        except Exception as e:
            return await self._degrade(dense, top_k, filter, reason=str(e))
        return [self._to_hit(p) for p in response.points]

    async def _degrade(
        self,
        dense: list[float],
        top_k: int,
        filter: PayloadFilter | None,
        *,
        reason: str,
    ) -> list[VectorHit]:
        self.hybrid_fallbacks += 1
        log.warning("vector.hybrid_degraded", reason=reason, collection=self._collection)
        return await self.search_dense(dense, top_k, filter)

    async def delete(self, point_id: PointId) -> None:
        await self.ensure_collection()
        await self._client.delete(
            collection_name=self._collection,
            points_selector=models.PointIdsList(points=[point_id]),
            wait=True,
        )

    async def delete_older_than(self, timestamp_ms: int) -> int:
        """Remove points whose payload timestamp is before ``timestamp_ms``.

        Returns the number of points matched before deletion.
        """
        await self.ensure_collection()
        qfilter = models.Filter(
            must=[models.FieldCondition(key="timestamp", range=models.Range(lt=timestamp_ms))]
        )
        counted = await self._client.count(
            collection_name=self._collection, count_filter=qfilter, exact=True
        )
        if counted.count:
            await self._client.delete(
                collection_name=self._collection,
                points_selector=models.FilterSelector(filter=qfilter),
                wait=True,
            )
        log.info("vector.pruned", deleted=counted.count, collection=self._collection)
        return counted.count

    async def stats(self) -> dict[str, Any]:
        await self.ensure_collection()
        info = await self._client.get_collection(self._collection)
        return {
            "collection": self._collection,
            "points_count": info.points_count or 0,
            "indexed_vectors_count": info.indexed_vectors_count or 0,
            "status": str(info.status.value if hasattr(info.status, "value") else info.status),
            "hybrid_fallbacks": self.hybrid_fallbacks,
        }

    @staticmethod
    def _to_hit(point: models.ScoredPoint) -> VectorHit:
        return VectorHit(id=point.id, score=float(point.score), payload=dict(point.payload or {}))

    async def close(self) -> None:
        await self._client.close()
