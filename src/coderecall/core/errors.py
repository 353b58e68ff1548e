"""CodeRecall error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Embedding provider
- 4xxx: Storage / vector consistency
- 5xxx: Validation
- 6xxx: Indexing
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_UNKNOWN_MODEL = 2004

    # Embedding provider (3xxx)
    PROVIDER_UNAVAILABLE = 3001
    PROVIDER_RATE_LIMITED = 3002
    PROVIDER_SERVER_ERROR = 3003
    PROVIDER_AUTH_FAILED = 3004
    PROVIDER_BAD_REQUEST = 3005
    PROVIDER_BAD_RESPONSE = 3006
    MODEL_LOAD_FAILED = 3007

    # Storage (4xxx)
    STORAGE_WRITE_FAILED = 4001
    STORAGE_READ_FAILED = 4002
    VECTOR_SYNC_FAILED = 4003

    # Validation (5xxx)
    VALIDATION_FAILED = 5001

    # Indexing (6xxx)
    FILE_NOT_FOUND = 6001

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class CodeRecallError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigurationError(CodeRecallError):
    """Configuration-related errors. Fatal at construction or first use."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_credentials(cls, field: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required credential: {field}",
            details={"field": field},
        )

    @classmethod
    def unknown_model(cls, model: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_UNKNOWN_MODEL,
            message=(
                f"Unknown embedding model '{model}': set embedding.dimensions explicitly"
            ),
            details={"model": model},
        )


class EmbeddingError(CodeRecallError):
    """Failure producing an embedding."""


class TransientProviderError(EmbeddingError):
    """Provider failure worth retrying (network, rate limit, server error)."""

    @classmethod
    def unavailable(cls, reason: str) -> "TransientProviderError":
        return cls(
            code=ErrorCode.PROVIDER_UNAVAILABLE,
            message=f"Embedding provider unreachable: {reason}",
            retryable=True,
            details={"reason": reason},
        )

    @classmethod
    def rate_limited(cls, body: str = "") -> "TransientProviderError":
        return cls(
            code=ErrorCode.PROVIDER_RATE_LIMITED,
            message="Embedding provider rate limit exceeded",
            retryable=True,
            details={"status": 429, "body": body},
        )

    @classmethod
    def server_error(cls, status: int, body: str = "") -> "TransientProviderError":
        return cls(
            code=ErrorCode.PROVIDER_SERVER_ERROR,
            message=f"Embedding provider returned HTTP {status}",
            retryable=True,
            details={"status": status, "body": body},
        )


class ProviderError(EmbeddingError):
    """Non-retryable provider or model failure."""

    @classmethod
    def auth_failed(cls, status: int) -> "ProviderError":
        return cls(
            code=ErrorCode.PROVIDER_AUTH_FAILED,
            message="Invalid API key for embedding provider",
            details={"status": status},
        )

    @classmethod
    def bad_request(cls, status: int, body: str = "") -> "ProviderError":
        return cls(
            code=ErrorCode.PROVIDER_BAD_REQUEST,
            message=f"Embedding request rejected with HTTP {status}",
            details={"status": status, "body": body},
        )

    @classmethod
    def bad_response(cls, reason: str, **details: Any) -> "ProviderError":
        return cls(
            code=ErrorCode.PROVIDER_BAD_RESPONSE,
            message=f"Malformed embedding response: {reason}",
            details=details,
        )

    @classmethod
    def model_load_failed(cls, model: str, reason: str) -> "ProviderError":
        return cls(
            code=ErrorCode.MODEL_LOAD_FAILED,
            message=f"Failed to load embedding model '{model}': {reason}",
            details={"model": model, "reason": reason},
        )


class StorageError(CodeRecallError):
    """Relational store failures."""

    @classmethod
    def write_failed(cls, table: str, reason: str) -> "StorageError":
        return cls(
            code=ErrorCode.STORAGE_WRITE_FAILED,
            message=f"Failed to write to {table}: {reason}",
            details={"table": table, "reason": reason},
        )

    @classmethod
    def read_failed(cls, table: str, reason: str) -> "StorageError":
        return cls(
            code=ErrorCode.STORAGE_READ_FAILED,
            message=f"Failed to read from {table}: {reason}",
            details={"table": table, "reason": reason},
        )


class ConsistencyWarning(CodeRecallError):
    """Relational row stored but its vector copy is missing.

    Built and logged, never raised: the relational ledger stays authoritative.
    """

    @classmethod
    def vector_sync_failed(cls, example_id: int, reason: str) -> "ConsistencyWarning":
        return cls(
            code=ErrorCode.VECTOR_SYNC_FAILED,
            message=f"Example {example_id} stored without vector copy: {reason}",
            retryable=True,
            details={"example_id": example_id, "reason": reason},
        )


class InvalidExampleError(CodeRecallError):
    """Submission rejected before anything was written."""

    @classmethod
    def missing_field(cls, field: str) -> "InvalidExampleError":
        return cls(
            code=ErrorCode.VALIDATION_FAILED,
            message=f"Example field '{field}' must be non-empty",
            details={"field": field},
        )


class NotFoundError(CodeRecallError):
    """A file vanished between discovery and read."""

    @classmethod
    def file(cls, path: str) -> "NotFoundError":
        return cls(
            code=ErrorCode.FILE_NOT_FOUND,
            message=f"File not found: {path}",
            details={"path": path},
        )


class InternalError(CodeRecallError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
