"""Config module exports."""

from coderecall.config.loader import CodeRecallSettings, get_repo_data_dir, load_config
from coderecall.config.models import (
    CacheConfig,
    CodeRecallConfig,
    ContextConfig,
    EmbeddingConfig,
    IndexerConfig,
    LoggingConfig,
    SearchConfig,
)

__all__ = [
    "load_config",
    "get_repo_data_dir",
    "CodeRecallConfig",
    "CodeRecallSettings",
    "CacheConfig",
    "ContextConfig",
    "EmbeddingConfig",
    "IndexerConfig",
    "LoggingConfig",
    "SearchConfig",
]
