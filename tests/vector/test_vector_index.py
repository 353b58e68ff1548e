"""Tests for the Qdrant-backed vector index.

Runs against the embedded in-memory Qdrant, so no server is needed.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from qdrant_client import models

from coderecall.config.models import VectorConfig
from coderecall.embedding.sparse import sparse_embed
from coderecall.vector.filters import PayloadFilter, RangeBound
from coderecall.vector.index import VectorIndex, VectorPoint

DIMS = 4


@pytest_asyncio.fixture
async def index():
    idx = VectorIndex(VectorConfig(location=":memory:", collection="test_examples"), DIMS)
    yield idx
    await idx.close()


def _payload(task: str, *, tool: str = "cli", language: str = "python", success: bool = True, ts: int = 1_000) -> dict:
    return {"task": task, "tool": tool, "language": language, "success": success, "timestamp": ts}


async def _seed(index: VectorIndex) -> None:
    await index.upsert_batch(
        [
            VectorPoint(1, [1.0, 0.0, 0.0, 0.0], sparse_embed("parse json file"), _payload("parse json file")),
            VectorPoint(2, [0.9, 0.1, 0.0, 0.0], sparse_embed("read yaml config"), _payload("read yaml config", language="typescript")),
            VectorPoint(3, [0.0, 1.0, 0.0, 0.0], sparse_embed("sort a list"), _payload("sort a list", success=False, ts=5_000)),
            VectorPoint(4, [0.0, 0.0, 1.0, 0.0], None, _payload("draw a chart", tool="web", ts=9_000)),
        ]
    )


class TestCollection:
    @pytest.mark.asyncio
    async def test_ensure_collection_is_idempotent(self, index: VectorIndex) -> None:
        await index.ensure_collection()
        await index.ensure_collection()
        stats = await index.stats()
        assert stats["collection"] == "test_examples"
        assert stats["points_count"] == 0

    @pytest.mark.asyncio
    async def test_existing_collection_not_recreated(self) -> None:
        client = AsyncMock()
        client.collection_exists.return_value = True
        idx = VectorIndex(VectorConfig(location=":memory:"), DIMS, client=client)

        await idx.ensure_collection()

        client.create_collection.assert_not_awaited()


class TestDenseSearch:
    @pytest.mark.asyncio
    async def test_results_best_first(self, index: VectorIndex) -> None:
        await _seed(index)

        hits = await index.search_dense([1.0, 0.0, 0.0, 0.0], top_k=3)

        assert [h.id for h in hits][:2] == [1, 2]
        assert hits[0].score == pytest.approx(1.0)
        assert hits[0].payload["task"] == "parse json file"

    @pytest.mark.asyncio
    async def test_filters_are_conjunctive(self, index: VectorIndex) -> None:
        await _seed(index)

        hits = await index.search_dense(
            [1.0, 0.0, 0.0, 0.0], top_k=10, filter=PayloadFilter.where(success=True, language="python")
        )

        assert {h.id for h in hits} == {1, 4}

    @pytest.mark.asyncio
    async def test_range_filter(self, index: VectorIndex) -> None:
        await _seed(index)

        hits = await index.search_dense(
            [1.0, 1.0, 1.0, 0.0], top_k=10, filter=PayloadFilter(ranges={"timestamp": RangeBound(gte=5_000)})
        )

        assert {h.id for h in hits} == {3, 4}

    @pytest.mark.asyncio
    async def test_wrong_dimensions_rejected(self, index: VectorIndex) -> None:
        with pytest.raises(ValueError):
            await index.search_dense([1.0, 0.0], top_k=1)

    @pytest.mark.asyncio
    async def test_upsert_replaces_point(self, index: VectorIndex) -> None:
        await index.upsert(7, [1.0, 0.0, 0.0, 0.0], payload=_payload("old"))
        await index.upsert(7, [0.0, 1.0, 0.0, 0.0], payload=_payload("new"))

        hits = await index.search_dense([0.0, 1.0, 0.0, 0.0], top_k=5)

        assert len(hits) == 1
        assert hits[0].payload["task"] == "new"


class TestHybridSearch:
    @pytest.mark.asyncio
    async def test_fusion_returns_lexical_and_semantic_matches(self, index: VectorIndex) -> None:
        await _seed(index)

        hits = await index.search_hybrid([1.0, 0.0, 0.0, 0.0], sparse_embed("yaml config"), top_k=3)

        assert {1, 2}.issubset({h.id for h in hits})
        assert index.hybrid_fallbacks == 0

    @pytest.mark.asyncio
    async def test_empty_sparse_degrades_to_dense(self, index: VectorIndex) -> None:
        await _seed(index)

        hits = await index.search_hybrid([1.0, 0.0, 0.0, 0.0], sparse_embed(""), top_k=2)

        assert [h.id for h in hits] == [1, 2]
        assert index.hybrid_fallbacks == 1

    @pytest.mark.asyncio
    async def test_fused_query_failure_degrades_to_dense(self, index: VectorIndex) -> None:
        await _seed(index)
        real_query = index._client.query_points

        async def flaky(*args, **kwargs):
            if "prefetch" in kwargs:
                raise RuntimeError("sparse vectors not configured")
            return await real_query(*args, **kwargs)

        index._client.query_points = flaky  # type: ignore[method-assign]

        hits = await index.search_hybrid([1.0, 0.0, 0.0, 0.0], sparse_embed("json"), top_k=1)

        assert [h.id for h in hits] == [1]
        assert index.hybrid_fallbacks == 1


class TestDeletion:
    @pytest.mark.asyncio
    async def test_delete_point(self, index: VectorIndex) -> None:
        await _seed(index)

        await index.delete(1)

        hits = await index.search_dense([1.0, 0.0, 0.0, 0.0], top_k=10)
        assert 1 not in {h.id for h in hits}

    @pytest.mark.asyncio
    async def test_delete_older_than(self, index: VectorIndex) -> None:
        await _seed(index)

        deleted = await index.delete_older_than(5_000)

        assert deleted == 2
        stats = await index.stats()
        assert stats["points_count"] == 2


class TestPayloadFilter:
    def test_where_drops_none(self) -> None:
        assert PayloadFilter.where(tool=None, language="python").equals == {"language": "python"}

    def test_empty_filter_translates_to_none(self) -> None:
        assert PayloadFilter().to_qdrant() is None

    def test_translation(self) -> None:
        qfilter = PayloadFilter(
            equals={"success": True}, ranges={"timestamp": RangeBound(lt=10)}
        ).to_qdrant()

        assert isinstance(qfilter, models.Filter)
        assert qfilter.must is not None
        assert len(qfilter.must) == 2
