"""Tests for error types and codes."""

import pytest

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


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.CONFIG_UNKNOWN_MODEL, 2000),
            (ErrorCode.PROVIDER_RATE_LIMITED, 3000),
            (ErrorCode.MODEL_LOAD_FAILED, 3000),
            (ErrorCode.STORAGE_WRITE_FAILED, 4000),
            (ErrorCode.VECTOR_SYNC_FAILED, 4000),
            (ErrorCode.VALIDATION_FAILED, 5000),
            (ErrorCode.FILE_NOT_FOUND, 6000),
            (ErrorCode.INTERNAL_ERROR, 9000),
        ],
    )
    def test_given_error_code_when_checked_then_in_correct_range(
        self, code: ErrorCode, expected_range: int
    ) -> None:
        """Error codes fall within their designated numeric range."""
        assert expected_range <= code.value < expected_range + 1000


class TestCodeRecallError:
    """Base error behavior tests."""

    def test_given_error_when_to_dict_then_serializes_all_fields(self) -> None:
        # Given
        error = CodeRecallError(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message="Test message",
            retryable=True,
            details={"key": "value"},
        )

        # When
        result = error.to_dict()

        # Then
        assert result == {
            "code": 2001,
            "error": "CONFIG_PARSE_ERROR",
            "message": "Test message",
            "retryable": True,
            "details": {"key": "value"},
        }

    def test_str_includes_code_and_name(self) -> None:
        error = NotFoundError.file("/tmp/gone.py")
        assert str(error) == "[6001] FILE_NOT_FOUND: File not found: /tmp/gone.py"

    def test_error_is_raisable(self) -> None:
        with pytest.raises(CodeRecallError):
            raise StorageError.write_failed("code_examples", "disk full")


class TestProviderErrors:
    @pytest.mark.parametrize(
        "error",
        [
            TransientProviderError.unavailable("connection refused"),
            TransientProviderError.rate_limited(),
            TransientProviderError.server_error(503),
        ],
    )
    def test_transient_errors_are_retryable(self, error: TransientProviderError) -> None:
        assert error.retryable
        assert isinstance(error, EmbeddingError)

    @pytest.mark.parametrize(
        "error",
        [
            ProviderError.auth_failed(401),
            ProviderError.bad_request(400, "bad"),
            ProviderError.bad_response("not json"),
            ProviderError.model_load_failed("BAAI/bge-small-en-v1.5", "boom"),
        ],
    )
    def test_permanent_errors_are_not_retryable(self, error: ProviderError) -> None:
        assert not error.retryable
        assert isinstance(error, EmbeddingError)

    def test_bad_response_carries_details(self) -> None:
        error = ProviderError.bad_response("dimension mismatch", expected=1536, received=3)
        assert error.details["expected"] == 1536
        assert error.details["received"] == 3


class TestFactories:
    def test_missing_credentials_names_field(self) -> None:
        error = ConfigurationError.missing_credentials("embedding.api_key")
        assert error.code == ErrorCode.CONFIG_MISSING_REQUIRED
        assert "embedding.api_key" in error.message

    def test_unknown_model(self) -> None:
        error = ConfigurationError.unknown_model("acme/embedder")
        assert error.code == ErrorCode.CONFIG_UNKNOWN_MODEL
        assert error.details["model"] == "acme/embedder"

    def test_vector_sync_warning(self) -> None:
        warning = ConsistencyWarning.vector_sync_failed(42, "timeout")
        assert warning.code == ErrorCode.VECTOR_SYNC_FAILED
        assert warning.details["example_id"] == 42

    def test_invalid_example(self) -> None:
        error = InvalidExampleError.missing_field("task")
        assert error.code == ErrorCode.VALIDATION_FAILED
        assert error.details == {"field": "task"}

    def test_internal_error(self) -> None:
        error = InternalError.unexpected("state corrupted", component="indexer")
        assert error.code == ErrorCode.INTERNAL_ERROR
        assert error.details == {"component": "indexer"}
