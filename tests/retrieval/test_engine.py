"""Tests for the retrieval engine.

Covers the store-and-retrieve scenario, threshold behavior, failure lookups
and degradation to an empty result on any error.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from coderecall.config.models import RetrievalConfig
from coderecall.embedding.gateway import EmbeddingGateway
from coderecall.ledger.ledger import ExampleLedger
from coderecall.ledger.models import ExampleRecord, NewExample
from coderecall.retrieval.engine import RetrievalEngine
from coderecall.retrieval.models import RetrievalResult
from coderecall.vector.index import VectorIndex


def _example(task: str, **overrides: object) -> NewExample:
    fields: dict[str, object] = {
        "task": task,
        "code": f"# {task}\npass",
        "language": "python",
        "tool": "codegen",
    }
    fields.update(overrides)
    return NewExample(**fields)  # type: ignore[arg-type]


@pytest.fixture
def engine(gateway: EmbeddingGateway, ledger: ExampleLedger) -> RetrievalEngine:
    return RetrievalEngine(gateway, ledger, config=RetrievalConfig(top_k=3, threshold=0.6))


class TestRetrieveSimilar:
    @pytest.mark.asyncio
    async def test_given_stored_example_when_same_task_queried_then_found(
        self, engine: RetrievalEngine, ledger: ExampleLedger
    ) -> None:
        """Store-and-retrieve: an identical task comes back with similarity ~1."""
        example_id = await ledger.insert(_example("create a rest api with fastapi", framework="fastapi"))

        results = await engine.retrieve_similar("create a rest api with fastapi")

        assert len(results) == 1
        assert results[0].example.id == example_id
        assert results[0].example.framework == "fastapi"
        assert results[0].similarity == pytest.approx(1.0, abs=1e-4)

    @pytest.mark.asyncio
    async def test_results_ordered_and_above_threshold(
        self, engine: RetrievalEngine, ledger: ExampleLedger
    ) -> None:
        await ledger.insert(_example("read a csv file into rows"))
        await ledger.insert(_example("read a csv file"))
        await ledger.insert(_example("render a bar chart with colors"))

        results = await engine.retrieve_similar("read a csv file", threshold=0.3)

        scores = [r.similarity for r in results]
        assert scores == sorted(scores, reverse=True)
        assert all(s >= 0.3 for s in scores)
        assert results[0].example.task == "read a csv file"

    @pytest.mark.asyncio
    async def test_raising_threshold_never_adds_results(
        self, engine: RetrievalEngine, ledger: ExampleLedger
    ) -> None:
        for task in ("merge two dicts", "merge two sorted lists", "merge dicts deeply", "open a socket"):
            await ledger.insert(_example(task))

        previous: set[int] | None = None
        for threshold in (0.0, 0.3, 0.5, 0.7, 0.9, 1.0):
            ids = {r.example.id for r in await engine.retrieve_similar("merge two dicts", top_k=10, threshold=threshold)}
            if previous is not None:
                assert ids <= previous
            previous = ids

    @pytest.mark.asyncio
    async def test_failures_and_other_tools_excluded(
        self, engine: RetrievalEngine, ledger: ExampleLedger
    ) -> None:
        await ledger.insert(_example("parse xml", success=False, error_type="ParseError"))
        await ledger.insert(_example("parse xml", tool="refactor"))
        kept = await ledger.insert(_example("parse xml"))

        results = await engine.retrieve_similar("parse xml", tool="codegen")

        assert [r.example.id for r in results] == [kept]

    @pytest.mark.asyncio
    async def test_language_filter(self, engine: RetrievalEngine, ledger: ExampleLedger) -> None:
        await ledger.insert(_example("debounce a function"))
        ts = await ledger.insert(_example("debounce a function", language="typescript"))

        results = await engine.retrieve_similar("debounce a function", language="typescript")

        assert [r.example.id for r in results] == [ts]

    @pytest.mark.asyncio
    async def test_top_k_limits(self, engine: RetrievalEngine, ledger: ExampleLedger) -> None:
        for i in range(5):
            await ledger.insert(_example(f"hash a password variant {i}"))

        results = await engine.retrieve_similar("hash a password variant", top_k=2, threshold=0.0)

        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_embedding_failure_returns_empty(
        self, engine: RetrievalEngine, ledger: ExampleLedger, fake_backend
    ) -> None:
        await ledger.insert(_example("anything"))
        fake_backend.fail_with = RuntimeError("provider down")

        assert await engine.retrieve_similar("anything") == []

    @pytest.mark.asyncio
    async def test_vector_failure_returns_empty(
        self, tmp_path: Path, gateway: EmbeddingGateway
    ) -> None:
        broken = AsyncMock(spec=VectorIndex)
        broken.search_dense.side_effect = ConnectionError("qdrant down")
        ledger = ExampleLedger.open(tmp_path / "ex.db", gateway)
        engine = RetrievalEngine(gateway, ledger, broken)

        assert await engine.retrieve_similar("anything") == []
        ledger.close()

    @pytest.mark.asyncio
    async def test_without_vector_index_returns_empty(self, tmp_path: Path, gateway: EmbeddingGateway) -> None:
        ledger = ExampleLedger.open(tmp_path / "ex.db", gateway)
        engine = RetrievalEngine(gateway, ledger)

        assert await engine.retrieve_similar("anything") == []
        ledger.close()

    @pytest.mark.asyncio
    async def test_foreign_points_skipped(
        self,
        engine: RetrievalEngine,
        ledger: ExampleLedger,
        gateway: EmbeddingGateway,
        vector_index: VectorIndex,
    ) -> None:
        """A point with a non-integer id in a shared collection is ignored, not raised."""
        example_id = await ledger.insert(_example("reverse a string"))
        await vector_index.upsert(
            "6f1c2a34-1b2c-4d5e-8f90-123456789abc",
            (await gateway.embed("reverse a string")).vector,
            gateway.embed_sparse("reverse a string"),
            {"task": "reverse a string", "success": True},
        )

        with capture_logs() as logs:
            similar = await engine.retrieve_similar("reverse a string")
            hybrid = await engine.retrieve_hybrid("reverse a string")

        assert [r.example.id for r in similar] == [example_id]
        assert [r.example.id for r in hybrid] == [example_id]
        assert any(e["event"] == "retrieval.foreign_point_skipped" for e in logs)


class TestRetrieveSimilarFailures:
    @pytest.mark.asyncio
    async def test_ranks_recent_failures(self, engine: RetrievalEngine, ledger: ExampleLedger) -> None:
        await ledger.insert(_example("connect to postgres"))
        bad = await ledger.insert(
            _example("connect to postgres", success=False, error_type="AuthError", error_message="denied")
        )
        await ledger.insert(_example("plot a histogram", success=False, error_type="ValueError"))

        results = await engine.retrieve_similar_failures("connect to postgres")

        assert [r.example.id for r in results] == [bad]
        assert results[0].example.error_type == "AuthError"

    @pytest.mark.asyncio
    async def test_error_type_filter(self, engine: RetrievalEngine, ledger: ExampleLedger) -> None:
        await ledger.insert(_example("compile regex", success=False, error_type="re.error"))
        other = await ledger.insert(_example("compile regex", success=False, error_type="TypeError"))

        results = await engine.retrieve_similar_failures("compile regex", error_type="TypeError")

        assert [r.example.id for r in results] == [other]

    @pytest.mark.asyncio
    async def test_works_without_vector_index(self, tmp_path: Path, gateway: EmbeddingGateway) -> None:
        ledger = ExampleLedger.open(tmp_path / "ex.db", gateway)
        engine = RetrievalEngine(gateway, ledger)
        failed = await ledger.insert(_example("zip files", success=False))

        results = await engine.retrieve_similar_failures("zip files")

        assert [r.example.id for r in results] == [failed]
        ledger.close()

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self, engine: RetrievalEngine, fake_backend) -> None:
        fake_backend.fail_with = RuntimeError("provider down")
        assert await engine.retrieve_similar_failures("anything") == []


class TestRetrieveHybrid:
    @pytest.mark.asyncio
    async def test_lexical_and_semantic_fusion(
        self, engine: RetrievalEngine, ledger: ExampleLedger, vector_index: VectorIndex
    ) -> None:
        target = await ledger.insert(_example("validate email address with regex"))
        await ledger.insert(_example("draw a pie chart"))

        results = await engine.retrieve_hybrid("validate email address")

        assert results[0].example.id == target
        assert vector_index.hybrid_fallbacks == 0

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self, engine: RetrievalEngine, fake_backend) -> None:
        fake_backend.fail_with = RuntimeError("provider down")
        assert await engine.retrieve_hybrid("anything") == []


class TestAugmentation:
    @pytest.mark.asyncio
    async def test_augment_prompt_with_retrieved_examples(
        self, engine: RetrievalEngine, ledger: ExampleLedger
    ) -> None:
        await ledger.insert(_example("flatten a nested list"))

        results = await engine.retrieve_similar("flatten a nested list")
        prompt = engine.augment_prompt("flatten a nested list", results)

        assert "<similar_examples>" in prompt
        assert "Task: flatten a nested list" in prompt

    def test_error_warnings_use_configured_preview(self, tmp_path: Path, gateway: EmbeddingGateway) -> None:
        ledger = ExampleLedger.open(tmp_path / "ex.db", gateway)
        engine = RetrievalEngine(gateway, ledger, config=RetrievalConfig(preview_chars=5))
        record = ExampleRecord(
            id=1, task="t", code="0123456789", language="python", tool="x", success=False, timestamp_ms=0
        )

        prompt = engine.augment_with_error_warnings("q", [RetrievalResult(record, 0.9)])

        assert "01234...\n```" in prompt
        ledger.close()
