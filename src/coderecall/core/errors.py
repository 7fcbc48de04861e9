"""CodeRecall error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Index / parsing
- 4xxx: Embedding / provider
- 5xxx: Cache
- 6xxx: Context
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

    # Index (3xxx)
    PARSE_UNSUPPORTED_LANGUAGE = 3001
    PARSE_UNREADABLE = 3002
    PARSE_GRAMMAR_UNAVAILABLE = 3003
    PARSE_FAILED = 3004
    INDEX_BUSY = 3010

    # Embedding / provider (4xxx)
    PROVIDER_REQUEST_FAILED = 4001
    PROVIDER_RATE_LIMITED = 4002
    PROVIDER_TIMEOUT = 4003
    PROVIDER_UNAVAILABLE = 4004
    PROVIDER_BAD_RESPONSE = 4005
    EMBEDDING_DIMENSION_MISMATCH = 4010
    EMBEDDING_DEGENERATE_VECTOR = 4011

    # Cache (5xxx)
    CACHE_CORRUPT_ENTRY = 5001

    # Context (6xxx)
    CONTEXT_SYMBOL_NOT_FOUND = 6001
    CONTEXT_INVALID_BUDGET = 6002

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
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CodeRecallError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )


class ParseError(CodeRecallError):
    """Per-file parse failure. The file is skipped and the build continues."""

    @classmethod
    def unsupported_language(cls, path: str) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_UNSUPPORTED_LANGUAGE,
            message=f"No parser registered for {path}",
            details={"path": path},
        )

    @classmethod
    def unreadable(cls, path: str, reason: str) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_UNREADABLE,
            message=f"Cannot read {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def grammar_unavailable(cls, language: str, module: str) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_GRAMMAR_UNAVAILABLE,
            message=f"Grammar for {language} is not installed (import {module})",
            details={"language": language, "module": module},
        )

    @classmethod
    def failed(cls, path: str, reason: str) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_FAILED,
            message=f"Parsing {path} failed: {reason}",
            details={"path": path, "reason": reason},
        )


class IndexBusyError(CodeRecallError):
    """Another build holds the lock for this repository root."""

    @classmethod
    def for_root(cls, root: str) -> "IndexBusyError":
        return cls(
            code=ErrorCode.INDEX_BUSY,
            message=f"An index build is already running for {root}",
            retryable=True,
            details={"root": root},
        )


class EmbeddingProviderError(CodeRecallError):
    """Failure talking to an embedding or chat provider."""

    @classmethod
    def request_failed(
        cls, provider: str, reason: str, *, retryable: bool = False, status: int | None = None
    ) -> "EmbeddingProviderError":
        return cls(
            code=ErrorCode.PROVIDER_REQUEST_FAILED,
            message=f"{provider} request failed: {reason}",
            retryable=retryable,
            details={"provider": provider, "reason": reason, "status": status},
        )

    @classmethod
    def timeout(cls, provider: str, timeout_sec: float) -> "EmbeddingProviderError":
        return cls(
            code=ErrorCode.PROVIDER_TIMEOUT,
            message=f"{provider} did not respond within {timeout_sec}s",
            retryable=True,
            details={"provider": provider, "timeout_sec": timeout_sec},
        )

    @classmethod
    def unavailable(cls, provider: str, reason: str) -> "EmbeddingProviderError":
        return cls(
            code=ErrorCode.PROVIDER_UNAVAILABLE,
            message=f"{provider} is unavailable: {reason}",
            details={"provider": provider, "reason": reason},
        )

    @classmethod
    def bad_response(cls, provider: str, reason: str) -> "EmbeddingProviderError":
        return cls(
            code=ErrorCode.PROVIDER_BAD_RESPONSE,
            message=f"{provider} returned an unusable response: {reason}",
            details={"provider": provider, "reason": reason},
        )


class RateLimitError(EmbeddingProviderError):
    """Provider asked us to slow down."""

    @classmethod
    def after(cls, provider: str, retry_after: float | None) -> "RateLimitError":
        return cls(
            code=ErrorCode.PROVIDER_RATE_LIMITED,
            message=f"{provider} rate limit exceeded",
            retryable=True,
            details={"provider": provider, "retry_after": retry_after},
        )

    @property
    def retry_after(self) -> float | None:
        value = self.details.get("retry_after")
        return float(value) if value is not None else None


class DimensionMismatchError(CodeRecallError):
    """Vectors of different dimensionality were compared."""

    @classmethod
    def between(cls, expected: int, actual: int) -> "DimensionMismatchError":
        return cls(
            code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
            message=f"Vector dimensions differ: {expected} != {actual}",
            details={"expected": expected, "actual": actual},
        )

    @classmethod
    def stale_index(cls, stored: int, provider: int) -> "DimensionMismatchError":
        return cls(
            code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
            message=(
                f"Index holds {stored}-dim vectors but the provider produces {provider}-dim "
                "vectors. Clear the index and rebuild."
            ),
            details={"expected": stored, "actual": provider},
        )

    @property
    def expected(self) -> int:
        return int(self.details["expected"])

    @property
    def actual(self) -> int:
        return int(self.details["actual"])


class DegenerateVectorError(CodeRecallError):
    """A zero-magnitude vector was normalized in strict mode."""

    @classmethod
    def zero_magnitude(cls, dimensions: int) -> "DegenerateVectorError":
        return cls(
            code=ErrorCode.EMBEDDING_DEGENERATE_VECTOR,
            message=f"Cannot normalize a zero vector ({dimensions} dims)",
            details={"dimensions": dimensions},
        )


class CacheCorruptionError(CodeRecallError):
    """A persisted cache entry could not be decoded."""

    @classmethod
    def bad_entry(cls, key: str, provider: str, reason: str) -> "CacheCorruptionError":
        return cls(
            code=ErrorCode.CACHE_CORRUPT_ENTRY,
            message=f"Corrupt cache entry {provider}/{key}: {reason}",
            details={"key": key, "provider": provider, "reason": reason},
        )


class ContextError(CodeRecallError):
    """Context assembly errors."""

    @classmethod
    def symbol_not_found(cls, name: str) -> "ContextError":
        return cls(
            code=ErrorCode.CONTEXT_SYMBOL_NOT_FOUND,
            message=f"Function not found: {name}",
            details={"name": name},
        )

    @classmethod
    def invalid_budget(cls, reason: str, **details: Any) -> "ContextError":
        return cls(
            code=ErrorCode.CONTEXT_INVALID_BUDGET,
            message=f"Invalid context budget: {reason}",
            details=details,
        )

