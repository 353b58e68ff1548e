"""Vector similarity index."""

from coderecall.vector.filters import PayloadFilter, RangeBound
from coderecall.vector.index import VectorHit, VectorIndex, VectorPoint, create_client

__all__ = [
    "PayloadFilter",
    "RangeBound",
    "VectorHit",
    "VectorIndex",
    "VectorPoint",
    "create_client",
]
