"""Core module exports."""

from coderecall.core.errors import (
    CodeRecallError,
    ConfigurationError,
    ConsistencyWarning,
    EmbeddingError,
    ErrorCode,
    InternalError,
    InvalidExampleError,
    NotFoundError,
    ProviderError,
    StorageError,
    TransientProviderError,
)
from coderecall.core.logging import configure_logging, get_logger

__all__ = [
    # Errors
    "CodeRecallError",
    "ConfigurationError",
    "ConsistencyWarning",
    "EmbeddingError",
    "ErrorCode",
    "InternalError",
    "InvalidExampleError",
    "NotFoundError",
    "ProviderError",
    "StorageError",
    "TransientProviderError",
    # Logging
    "configure_logging",
    "get_logger",
]
