"""Local embedding provider backed by fastembed (ONNX Runtime).

The model is loaded lazily on the first embed call, so constructing the
provider is cheap and importing this module never requires fastembed.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Sequence
from typing import Any

import numpy as np
import structlog

from coderecall.core.errors import EmbeddingProviderError

log = structlog.get_logger()

DEFAULT_MODEL = "BAAI/bge-small-en-v1.5"

# Known output sizes; anything else is learned from the first vector.
_KNOWN_DIMENSIONS = {
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "jinaai/jina-embeddings-v2-base-code": 768,
}


def _detect_providers() -> list[str]:
    """Detect available ONNX Runtime execution providers."""
    try:
        import onnxruntime as ort  # type: ignore[import-not-found]

        available = set(ort.get_available_providers())
    except Exception:
        return []

    providers: list[str] = []
    if "CUDAExecutionProvider" in available:
        providers.append("CUDAExecutionProvider")
    providers.append("CPUExecutionProvider")
    return providers


class FastEmbedProvider:
    """Embeds text with a local fastembed ``TextEmbedding`` model."""

    def __init__(self, model: str = DEFAULT_MODEL, *, batch_size: int = 64) -> None:
        self._model_name = model
        self._batch_size = batch_size
        self._model: Any | None = None
        self._dimensions: int | None = _KNOWN_DIMENSIONS.get(model)
        self._load_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "fastembed"

    @property
    def model(self) -> str:
        return self._model_name

    @property
    def dimensions(self) -> int | None:
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        self._ensure_model()
        assert self._model is not None
        try:
            raw = list(self._model.embed(list(texts), batch_size=self._batch_size))
        except Exception as e:
            raise EmbeddingProviderError.request_failed(self.name, str(e)) from e
        vectors = [np.asarray(v, dtype=np.float64).tolist() for v in raw]
        if len(vectors) != len(texts):
            raise EmbeddingProviderError.bad_response(
                self.name, f"expected {len(texts)} vectors, got {len(vectors)}"
            )
        if vectors and self._dimensions is None:
            self._dimensions = len(vectors[0])
        return vectors

    def _ensure_model(self) -> None:
        """Lazy-load the fastembed TextEmbedding model with GPU auto-detect."""
        if self._model is not None:
            return
        with self._load_lock:
            if self._model is not None:
                return
            try:
                from fastembed import TextEmbedding  # type: ignore[import-not-found]
            except ImportError as e:
                log.warning("embedding.fastembed_not_installed", hint="pip install fastembed")
                raise EmbeddingProviderError.unavailable(
                    self.name, "fastembed is not installed"
                ) from e

            providers = _detect_providers()
            threads = max(1, (os.cpu_count() or 4) // 2)
            kwargs: dict[str, Any] = {"model_name": self._model_name, "threads": threads}
            if providers:
                kwargs["providers"] = providers
            start = time.monotonic()
            try:
                self._model = TextEmbedding(**kwargs)
            except Exception as e:
                log.warning("embedding.model_load_failed", model=self._model_name, exc_info=True)
                raise EmbeddingProviderError.unavailable(self.name, str(e)) from e
            log.info(
                "embedding.model_loaded",
                model=self._model_name,
                providers=providers or ["CPUExecutionProvider"],
                threads=threads,
                elapsed_s=round(time.monotonic() - start, 2),
            )
