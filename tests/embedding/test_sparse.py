"""Tests for lexical sparse vectors."""

import pytest

from coderecall.config.constants import SPARSE_VOCAB_SIZE
from coderecall.embedding.sparse import hash_token, sparse_embed, tokenize


class TestTokenize:
    def test_camel_case_split(self) -> None:
        tokens = tokenize("getUserById")
        assert tokens[:4] == ["get", "user", "by", "id"]

    def test_snake_case_split(self) -> None:
        tokens = tokenize("rate_limit")
        assert tokens[:2] == ["rate", "limit"]

    def test_short_words_dropped_from_prose(self) -> None:
        """Prose words under three characters are not tokens."""
        assert tokenize("go to an API") == ["api"]

    def test_punctuation_removed(self) -> None:
        assert tokenize("fetch(), parse!") == ["fetch", "parse"]


class TestHashToken:
    def test_deterministic(self) -> None:
        assert hash_token("python") == hash_token("python")

    @pytest.mark.parametrize("token", ["a", "python", "x" * 200, "Ünïcödé"])
    def test_within_vocab(self, token: str) -> None:
        assert 0 <= hash_token(token) < SPARSE_VOCAB_SIZE

    def test_matches_java_style_string_hash(self) -> None:
        """'abc' hashes to 96354 as a 32-bit h*31+c."""
        assert hash_token("abc") == 96354 % SPARSE_VOCAB_SIZE


class TestSparseEmbed:
    def test_empty_text(self) -> None:
        assert sparse_embed("").is_empty
        assert sparse_embed("a b").is_empty

    def test_indices_sorted_and_unique(self) -> None:
        vector = sparse_embed("parse the parsed parser parse json parse")
        assert vector.indices == sorted(set(vector.indices))

    def test_weights_are_term_frequencies(self) -> None:
        vector = sparse_embed("alpha alpha beta")
        weights = dict(zip(vector.indices, vector.values, strict=True))
        assert weights[hash_token("alpha")] == pytest.approx(2 / 3)
        assert weights[hash_token("beta")] == pytest.approx(1 / 3)
        assert sum(vector.values) == pytest.approx(1.0)
