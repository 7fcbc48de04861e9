"""OpenAI-compatible HTTP provider (OpenAI, Azure-style gateways, Ollama, vLLM).

Speaks ``POST {base_url}/embeddings`` and ``POST {base_url}/chat/completions``
over httpx. HTTP failures are mapped onto EmbeddingProviderError so the retry
policy can decide what to repeat:

- 429 -> RateLimitError (honours the Retry-After header)
- 5xx, connect errors, timeouts -> retryable
- other 4xx -> not retryable
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
import structlog

from coderecall.core.errors import EmbeddingProviderError, RateLimitError
from coderecall.providers.base import ChatMessage, ChatResponse

log = structlog.get_logger()

_PROVIDER_NAME = "openai"


def _parse_retry_after(value: str | None) -> float | None:
    """Retry-After is either delta-seconds or an HTTP date."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
        return max(0.0, (when - datetime.now(UTC)).total_seconds())
    except (TypeError, ValueError):
        return None


class OpenAIProvider:
    """Embedding + chat provider for any OpenAI-compatible endpoint."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        *,
        base_url: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        chat_model: str | None = None,
        dimensions: int | None = None,
        timeout_sec: float = 30.0,
        batch_size: int = 64,
        client: httpx.Client | None = None,
    ) -> None:
        self._model = model
        self._chat_model = chat_model
        self._dimensions = dimensions
        self._timeout_sec = timeout_sec
        self._batch_size = batch_size
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_sec),
        )

    @property
    def name(self) -> str:
        return _PROVIDER_NAME

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int | None:
        return self._dimensions

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            chunk = list(texts[start : start + self._batch_size])
            payload: dict[str, Any] = {"model": self._model, "input": chunk}
            data = self._post("/embeddings", payload)
            vectors.extend(self._parse_embeddings(data, len(chunk)))
        if vectors and self._dimensions is None:
            self._dimensions = len(vectors[0])
        return vectors

    def _parse_embeddings(self, data: dict[str, Any], expected: int) -> list[list[float]]:
        items = data.get("data")
        if not isinstance(items, list) or len(items) != expected:
            raise EmbeddingProviderError.bad_response(
                self.name, f"expected {expected} embeddings in 'data'"
            )
        # Responses carry an index; do not trust list order.
        ordered = sorted(items, key=lambda item: item.get("index", 0))
        try:
            return [[float(x) for x in item["embedding"]] for item in ordered]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingProviderError.bad_response(self.name, str(e)) from e

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def chat(
        self, messages: Sequence[ChatMessage], options: dict[str, Any] | None = None
    ) -> ChatResponse:
        options = dict(options or {})
        model = options.pop("model", None) or self._chat_model
        if not model:
            raise EmbeddingProviderError.unavailable(self.name, "no chat model configured")
        payload: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            **options,
        }
        data = self._post("/chat/completions", payload)
        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise EmbeddingProviderError.bad_response(self.name, "missing choices") from e
        usage = {k: int(v) for k, v in (data.get("usage") or {}).items() if isinstance(v, int)}
        return ChatResponse(content=content, model=data.get("model", model), usage=usage)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise EmbeddingProviderError.timeout(self.name, self._timeout_sec) from e
        except httpx.RequestError as e:
            raise EmbeddingProviderError.request_failed(self.name, str(e), retryable=True) from e

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            log.warning("provider.rate_limited", provider=self.name, retry_after=retry_after)
            raise RateLimitError.after(self.name, retry_after)
        if response.status_code >= 400:
            raise EmbeddingProviderError.request_failed(
                self.name,
                f"HTTP {response.status_code}: {response.text[:200]}",
                retryable=response.status_code >= 500,
                status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise EmbeddingProviderError.bad_response(self.name, "body is not JSON") from e
        if not isinstance(data, dict):
            raise EmbeddingProviderError.bad_response(self.name, "body is not an object")
        return data
