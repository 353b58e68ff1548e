"""Example retrieval and prompt augmentation."""

from coderecall.retrieval.engine import RetrievalEngine
from coderecall.retrieval.models import RetrievalResult
from coderecall.retrieval.prompts import augment_prompt, augment_with_error_warnings

__all__ = [
    "RetrievalEngine",
    "RetrievalResult",
    "augment_prompt",
    "augment_with_error_warnings",
]
