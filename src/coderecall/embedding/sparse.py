"""Lexical sparse vectors for hybrid search.

Term frequencies over identifier-aware tokens, hashed into a fixed index
space. No IDF: weights are only comparable within one text.
"""

from __future__ import annotations

import re
from collections import Counter

from coderecall.config.constants import SPARSE_MIN_TOKEN_LEN, SPARSE_VOCAB_SIZE
from coderecall.embedding.models import SparseVector

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
# camelCase / PascalCase → words
_CAMEL_SPLIT = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?=[A-Z][a-z]|\d|\b)|[0-9]+")
_NON_WORD = re.compile(r"[^\w\s]")


def tokenize(text: str) -> list[str]:
    """Split text into lexical tokens.

    Identifier parts come first (``getUserById`` → get, user, by, id and
    ``rate_limit`` → rate, limit), then every lowercase word of at least
    three characters. A word can therefore count twice, which boosts
    identifiers over prose.
    """
    tokens: list[str] = []
    for ident in _IDENTIFIER.findall(text):
        core = ident.strip("_")
        if "_" in core:
            tokens.extend(part.lower() for part in core.split("_") if part)
        elif core[1:] != core[1:].lower() and core != core.upper():
            tokens.extend(word.lower() for word in _CAMEL_SPLIT.findall(core))

    general = _NON_WORD.sub(" ", text.lower()).split()
    tokens.extend(t for t in general if len(t) >= SPARSE_MIN_TOKEN_LEN)
    return tokens


def hash_token(token: str) -> int:
    """32-bit rolling string hash (h * 31 + c, signed) folded into the vocab."""
    h = 0
    for ch in token:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h) % SPARSE_VOCAB_SIZE


def sparse_embed(text: str) -> SparseVector:
    """Term-frequency sparse vector for ``text``.

    Hash collisions are merged by summing their weights so that indices stay
    unique.
    """
    tokens = tokenize(text)
    if not tokens:
        return SparseVector()

    total = len(tokens)
    weights: dict[int, float] = {}
    for term, freq in Counter(tokens).items():
        idx = hash_token(term)
        weights[idx] = weights.get(idx, 0.0) + freq / total

    indices = sorted(weights)
    return SparseVector(indices=indices, values=[weights[i] for i in indices])
