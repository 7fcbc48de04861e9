"""Tests for providers/factory.py and the fastembed provider shell."""

from __future__ import annotations

from unittest.mock import MagicMock

import numpy as np
import pytest

from coderecall.config.models import EmbeddingConfig
from coderecall.core.errors import ConfigError, EmbeddingProviderError
from coderecall.providers.factory import create_provider
from coderecall.providers.fastembed_provider import FastEmbedProvider
from coderecall.providers.openai import OpenAIProvider


class TestCreateProvider:
    """Provider selection from configuration."""

    def test_fastembed_default(self) -> None:
        provider = create_provider(EmbeddingConfig())

        assert isinstance(provider, FastEmbedProvider)
        assert provider.dimensions == 384

    def test_openai_with_key(self) -> None:
        provider = create_provider(EmbeddingConfig(provider="openai", api_key="sk-test"))

        assert isinstance(provider, OpenAIProvider)
        assert provider.name == "openai"

    def test_openai_without_key_is_config_error(self) -> None:
        with pytest.raises(ConfigError):
            create_provider(EmbeddingConfig(provider="openai"))

    def test_local_openai_compatible_needs_no_key(self) -> None:
        config = EmbeddingConfig(provider="openai", base_url="http://localhost:11434/v1")

        assert isinstance(create_provider(config), OpenAIProvider)


class TestFastEmbedProvider:
    """Vector conversion around an injected model."""

    def test_embed_batch_converts_arrays(self) -> None:
        provider = FastEmbedProvider("custom/model")
        model = MagicMock()
        model.embed.return_value = iter([np.array([1, 2], dtype=np.float32), np.array([3, 4])])
        provider._model = model

        vectors = provider.embed_batch(["a", "b"])

        assert vectors == [[1.0, 2.0], [3.0, 4.0]]
        assert provider.dimensions == 2

    def test_empty_batch_skips_model(self) -> None:
        provider = FastEmbedProvider()

        assert provider.embed_batch([]) == []
        assert provider._model is None

    def test_model_failure_is_provider_error(self) -> None:
        provider = FastEmbedProvider()
        model = MagicMock()
        model.embed.side_effect = RuntimeError("onnx exploded")
        provider._model = model

        with pytest.raises(EmbeddingProviderError):
            provider.embed("x")
