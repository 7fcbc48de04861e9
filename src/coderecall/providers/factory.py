"""Build a provider from configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from coderecall.core.errors import ConfigError
from coderecall.providers.fastembed_provider import FastEmbedProvider
from coderecall.providers.openai import OpenAIProvider

if TYPE_CHECKING:
    from coderecall.config.models import EmbeddingConfig
    from coderecall.providers.base import EmbeddingProvider


def create_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Instantiate the embedding provider named by ``config.provider``."""
    if config.provider == "fastembed":
        return FastEmbedProvider(config.model, batch_size=config.batch_size)
    if config.provider == "openai":
        if not config.api_key and "api.openai.com" in config.base_url:
            raise ConfigError.missing_required("embedding.api_key")
        return OpenAIProvider(
            config.model,
            base_url=config.base_url,
            api_key=config.api_key,
            chat_model=config.chat_model,
            dimensions=config.dimensions,
            timeout_sec=config.timeout_sec,
            batch_size=config.batch_size,
        )
    raise ConfigError.invalid_value("embedding.provider", config.provider, "unknown provider")
