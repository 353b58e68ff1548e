"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages and
provides a deterministic embedding backend shared by the suites.
"""

import hashlib
import math
import re
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Insert local src directory at the beginning of sys.path
# This ensures that the local coderecall package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

from coderecall.config.models import VectorConfig  # noqa: E402
from coderecall.embedding.gateway import EmbeddingGateway  # noqa: E402
from coderecall.embedding.models import EmbeddingResult, EmbedOptions  # noqa: E402
from coderecall.ledger.ledger import ExampleLedger  # noqa: E402
from coderecall.vector.index import VectorIndex  # noqa: E402

FAKE_DIMENSIONS = 64
_WORD = re.compile(r"[a-z0-9]+")


def hashed_vector(text: str, dimensions: int = FAKE_DIMENSIONS) -> list[float]:
    """Unit bag-of-words vector: identical texts score 1.0, disjoint ones 0.0."""
    vector = [0.0] * dimensions
    for word in _WORD.findall(text.lower()):
        digest = hashlib.blake2b(word.encode(), digest_size=4).digest()
        vector[int.from_bytes(digest, "big") % dimensions] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    return [v / norm for v in vector] if norm else vector


class HashingBackend:
    """In-process embedding backend with call accounting."""

    name = "fake"
    model_id = "fake-model"
    dimensions = FAKE_DIMENSIONS

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.fail_with: Exception | None = None

    async def embed_batch(
        self,
        texts: list[str],
        options: EmbedOptions | None = None,  # noqa: ARG002
    ) -> list[EmbeddingResult]:
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        return [
            EmbeddingResult(vector=hashed_vector(t), token_count=len(t) // 4 + 1, model_id=self.model_id)
            for t in texts
        ]

    async def aclose(self) -> None:
        pass


@pytest.fixture
def fake_backend() -> HashingBackend:
    return HashingBackend()


@pytest.fixture
def gateway(fake_backend: HashingBackend) -> EmbeddingGateway:
    return EmbeddingGateway(fake_backend)


@pytest_asyncio.fixture
async def vector_index():
    """Embedded in-memory Qdrant collection sized for the hashing backend."""
    index = VectorIndex(VectorConfig(location=":memory:"), FAKE_DIMENSIONS)
    yield index
    await index.close()


@pytest.fixture
def ledger(tmp_path: Path, gateway: EmbeddingGateway, vector_index: VectorIndex):
    store = ExampleLedger.open(tmp_path / "code-examples.db", gateway, vector_index)
    yield store
    store.close()
