"""Core module exports."""

from coderecall.core.errors import (
    CacheCorruptionError,
    CodeRecallError,
    ConfigError,
    ContextError,
    DegenerateVectorError,
    DimensionMismatchError,
    EmbeddingProviderError,
    ErrorCode,
    IndexBusyError,
    ParseError,
    RateLimitError,
)
from coderecall.core.logging import (
    clear_operation_id,
    configure_logging,
    get_logger,
    get_operation_id,
    set_operation_id,
)
from coderecall.core.progress import pluralize, spinner, status

__all__ = [
    # Errors
    "CacheCorruptionError",
    "CodeRecallError",
    "ConfigError",
    "ContextError",
    "DegenerateVectorError",
    "DimensionMismatchError",
    "EmbeddingProviderError",
    "ErrorCode",
    "IndexBusyError",
    "ParseError",
    "RateLimitError",
    # Logging
    "clear_operation_id",
    "configure_logging",
    "get_logger",
    "get_operation_id",
    "set_operation_id",
    # Progress
    "pluralize",
    "spinner",
    "status",
]
