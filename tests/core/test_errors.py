"""Tests for error types and codes."""

import pytest

from coderecall.core.errors import (
    CacheCorruptionError,
    CodeRecallError,
    ContextError,
    DimensionMismatchError,
    EmbeddingProviderError,
    ErrorCode,
    IndexBusyError,
    ParseError,
    RateLimitError,
)


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.PARSE_UNSUPPORTED_LANGUAGE, 3000),
            (ErrorCode.INDEX_BUSY, 3000),
            (ErrorCode.PROVIDER_RATE_LIMITED, 4000),
            (ErrorCode.EMBEDDING_DIMENSION_MISMATCH, 4000),
            (ErrorCode.CACHE_CORRUPT_ENTRY, 5000),
            (ErrorCode.CONTEXT_SYMBOL_NOT_FOUND, 6000),
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
        """Error serializes to dict with all required fields."""
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

    def test_given_error_when_str_then_human_readable(self) -> None:
        """Error string representation is human readable."""
        error = CodeRecallError(code=ErrorCode.INTERNAL_ERROR, message="Something broke")

        assert str(error) == "[9001] INTERNAL_ERROR: Something broke"

    def test_error_is_raisable(self) -> None:
        """Errors can be raised and caught as exceptions."""
        with pytest.raises(CodeRecallError) as exc_info:
            raise ParseError.unsupported_language("a.xyz")

        assert exc_info.value.code == ErrorCode.PARSE_UNSUPPORTED_LANGUAGE


class TestFactories:
    """Classmethod factories carry their context in details."""

    def test_rate_limit_is_provider_error_with_retry_after(self) -> None:
        """RateLimitError is retryable and exposes retry_after."""
        error = RateLimitError.after("openai", 2.5)

        assert isinstance(error, EmbeddingProviderError)
        assert error.retryable is True
        assert error.retry_after == 2.5

    def test_rate_limit_without_retry_after(self) -> None:
        """Missing Retry-After reads as None."""
        assert RateLimitError.after("openai", None).retry_after is None

    def test_dimension_mismatch_exposes_sizes(self) -> None:
        """expected/actual come from details."""
        error = DimensionMismatchError.between(3, 2)

        assert error.expected == 3
        assert error.actual == 2
        assert "3 != 2" in error.message

    def test_stale_index_mentions_rebuild(self) -> None:
        """Stale index errors tell the caller what to do."""
        error = DimensionMismatchError.stale_index(384, 1536)

        assert "rebuild" in error.message
        assert error.details == {"expected": 384, "actual": 1536}

    def test_index_busy_is_retryable(self) -> None:
        """A busy root can be retried later."""
        error = IndexBusyError.for_root("/repo")

        assert error.retryable is True
        assert error.details["root"] == "/repo"

    def test_provider_timeout_is_retryable(self) -> None:
        """Timeouts are transient."""
        assert EmbeddingProviderError.timeout("openai", 30.0).retryable is True

    def test_bad_response_is_not_retryable(self) -> None:
        """A malformed response will not fix itself."""
        assert EmbeddingProviderError.bad_response("openai", "no data").retryable is False

    def test_cache_and_context_factories(self) -> None:
        """Cache and context errors carry their identifiers."""
        corrupt = CacheCorruptionError.bad_entry("k", "stub", "bad JSON")
        missing = ContextError.symbol_not_found("authenticate")

        assert corrupt.details["key"] == "k"
        assert corrupt.code == ErrorCode.CACHE_CORRUPT_ENTRY
        assert missing.code == ErrorCode.CONTEXT_SYMBOL_NOT_FOUND
        assert "authenticate" in missing.message

    def test_parse_failed_names_file_and_cause(self) -> None:
        """Unexpected collaborator failures keep the path and reason."""
        error = ParseError.failed("bad.boom", "RuntimeError: crashed")

        assert error.error_name == "PARSE_FAILED"
        assert error.details == {"path": "bad.boom", "reason": "RuntimeError: crashed"}
        assert error.retryable is False
