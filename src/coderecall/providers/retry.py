"""Bounded retry with exponential backoff for provider calls."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from coderecall.core.errors import EmbeddingProviderError, RateLimitError

log = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry schedule: ``min(base_delay * 2**attempt, max_delay)`` between attempts."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0

    def delay_for(self, attempt: int, error: EmbeddingProviderError | None = None) -> float:
        """Delay before retry number ``attempt + 1`` (attempt is zero-based)."""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            delay = max(delay, error.retry_after)
        return delay

    @classmethod
    def from_config(cls, config: object) -> RetryPolicy:
        return cls(
            max_attempts=getattr(config, "max_attempts", cls.max_attempts),
            base_delay=getattr(config, "base_delay_sec", cls.base_delay),
            max_delay=getattr(config, "max_delay_sec", cls.max_delay),
        )


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    operation: str = "provider_call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``fn`` until it succeeds or the policy is exhausted.

    Only retryable EmbeddingProviderErrors are retried. A rate-limit error
    waits at least as long as the provider asked. The last error is
    re-raised after the final attempt.
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return fn()
        except EmbeddingProviderError as e:
            if not e.retryable or attempt + 1 >= attempts:
                raise
            delay = policy.delay_for(attempt, e)
            log.warning(
                "provider.retry",
                operation=operation,
                attempt=attempt + 1,
                max_attempts=attempts,
                delay_sec=delay,
                error=e.error_name,
            )
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
