"""Provider capability interfaces.

Everything above this layer talks to AI backends only through these
protocols, so tests can pass a stub and the indexer never knows whether
vectors come from a local ONNX model or an HTTP API.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class ChatMessage:
    role: str  # system, user, assistant
    content: str


@dataclass(frozen=True)
class ChatResponse:
    content: str
    model: str | None = None
    usage: dict[str, int] = field(default_factory=dict)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns text into fixed-size vectors.

    ``dimensions`` may be None until the first vector has been produced.
    Failures raise EmbeddingProviderError (retryable or not).
    """

    @property
    def name(self) -> str: ...

    @property
    def model(self) -> str: ...

    @property
    def dimensions(self) -> int | None: ...

    def embed(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]: ...


@runtime_checkable
class ChatProvider(Protocol):
    """Answers a conversation with a single message."""

    @property
    def name(self) -> str: ...

    def chat(
        self, messages: Sequence[ChatMessage], options: dict[str, Any] | None = None
    ) -> ChatResponse: ...
