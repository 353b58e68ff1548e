"""Tests for the model table, cost estimation and embedding value types."""

import pytest

from coderecall.core.errors import ConfigurationError
from coderecall.embedding.models import (
    EmbeddingResult,
    SparseVector,
    canonical_model_id,
    estimate_cost,
    resolve_dimensions,
)


class TestModelTable:
    @pytest.mark.parametrize(
        ("model", "expected"),
        [
            ("openai/text-embedding-3-small", 1536),
            ("openai/text-embedding-3-large", 3072),
            ("text-embedding-3-small", 1536),
            ("BAAI/bge-small-en-v1.5", 384),
            ("voyageai/voyage-code-2", 1536),
        ],
    )
    def test_known_model_dimensions(self, model: str, expected: int) -> None:
        assert resolve_dimensions(model) == expected

    def test_bare_name_resolves_to_prefixed_id(self) -> None:
        assert canonical_model_id("text-embedding-3-large") == "openai/text-embedding-3-large"

    def test_unknown_model_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            resolve_dimensions("acme/mystery-embedder")

    def test_override_wins_even_for_unknown_model(self) -> None:
        assert resolve_dimensions("acme/mystery-embedder", 256) == 256


class TestEstimateCost:
    def test_priced_model(self) -> None:
        cost = estimate_cost("openai/text-embedding-3-small", 1_000_000)
        assert cost.amount == pytest.approx(0.02)
        assert cost.input_tokens == 1_000_000
        assert cost.currency == "USD"

    def test_rounded_to_six_decimals(self) -> None:
        cost = estimate_cost("openai/text-embedding-3-large", 7)
        assert cost.amount == round(7 * 0.13 / 1_000_000, 6)

    def test_unpriced_model_costs_nothing(self) -> None:
        assert estimate_cost("BAAI/bge-small-en-v1.5", 5000).amount == 0.0


class TestValueTypes:
    def test_result_dimensions(self) -> None:
        result = EmbeddingResult(vector=[0.1, 0.2, 0.3], token_count=2, model_id="m")
        assert result.dimensions == 3

    def test_sparse_vector_length_mismatch_rejected(self) -> None:
        with pytest.raises(ValueError):
            SparseVector(indices=[1, 2], values=[0.5])

    def test_empty_sparse_vector(self) -> None:
        assert SparseVector().is_empty
        assert not SparseVector(indices=[3], values=[1.0]).is_empty
