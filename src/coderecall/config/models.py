"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CODERECALL__SECTION__KEY)
3. Repo YAML (<repo>/.coderecall/config.yaml)
4. Global YAML (~/.config/coderecall/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    CODERECALL__<SECTION>__<KEY>=<VALUE>

Examples:
    CODERECALL__LOGGING__LEVEL=DEBUG
    CODERECALL__EMBEDDING__PROVIDER=openai
    CODERECALL__CACHE__MAX_SIZE_MB=250
    CODERECALL__CONTEXT__MAX_TOKENS=8000
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
ProviderName = Literal["fastembed", "openai"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CODERECALL__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every file and cache decision.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class StorageConfig(BaseModel):
    """Where per-repository index and cache databases live.

    Env vars:
        CODERECALL__STORAGE__DATA_DIR: Root directory for all repositories
    """

    data_dir: str | None = Field(
        default=None,
        description="Root data directory. Each repository gets <data_dir>/<repo_id>/. "
        "Default: ~/.cache/coderecall",
    )

    def resolve_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return Path("~/.cache/coderecall").expanduser()


class IndexerConfig(BaseModel):
    """Index build configuration.

    Env vars:
        CODERECALL__INDEXER__MAX_WORKERS: Parallel parse/embed workers
        CODERECALL__INDEXER__MAX_FILE_SIZE_KB: Skip files larger than this
    """

    max_workers: int | None = Field(
        default=None,
        description="Parallel workers for parsing and embedding. Default: os.cpu_count().",
    )
    max_file_size_kb: int = Field(
        default=512,
        description="Skip files larger than this (KB). Large generated files add noise.",
    )
    include_docs: bool = Field(
        default=True,
        description="Index Markdown/reStructuredText documentation as file units.",
    )
    respect_gitignore: bool = Field(
        default=True,
        description="Apply .gitignore patterns in addition to .crignore.",
    )
    max_embed_chars: int = Field(
        default=2000,
        description="Characters of unit content sent to the embedding provider. "
        "TRADEOFF: More context per vector vs provider token limits.",
    )

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError(f"max_workers must be >= 1, got {v}")
        return v


class EmbeddingConfig(BaseModel):
    """AI provider configuration.

    Env vars:
        CODERECALL__EMBEDDING__PROVIDER: fastembed (local) or openai (HTTP)
        CODERECALL__EMBEDDING__MODEL: Embedding model name
        CODERECALL__EMBEDDING__BASE_URL: OpenAI-compatible endpoint
        CODERECALL__EMBEDDING__API_KEY: API key for the HTTP provider
    """

    provider: ProviderName = Field(
        default="fastembed",
        description="Embedding provider. fastembed runs locally; openai speaks the "
        "OpenAI-compatible HTTP API (OpenAI, Ollama, vLLM, ...).",
    )
    model: str = Field(
        default="BAAI/bge-small-en-v1.5",
        description="Embedding model name.",
    )
    chat_model: str | None = Field(
        default=None,
        description="Chat model for HTTP providers that also answer questions.",
    )
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible API.",
    )
    api_key: str | None = Field(
        default=None,
        description="API key. Prefer the env var over committing it to YAML.",
    )
    dimensions: int | None = Field(
        default=None,
        description="Expected vector size. Learned from the first response when unset.",
    )
    timeout_sec: float = Field(
        default=30.0,
        description="Per-request timeout for HTTP providers.",
    )
    batch_size: int = Field(
        default=64,
        description="Texts per embedding request.",
    )
    max_attempts: int = Field(
        default=3,
        description="Attempts per provider call before the unit is left un-embedded.",
    )
    base_delay_sec: float = Field(
        default=0.5,
        description="Base delay between retries (exponential backoff).",
    )
    max_delay_sec: float = Field(
        default=30.0,
        description="Upper bound on a single backoff delay.",
    )

    @field_validator("max_attempts", "batch_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v


class CacheConfig(BaseModel):
    """AI result cache configuration.

    Env vars:
        CODERECALL__CACHE__MAX_SIZE_MB: Total size budget before LRU eviction
    """

    max_size_mb: float = Field(
        default=100.0,
        description="Total size budget. Least-recently-used entries are evicted above it.",
    )

    @field_validator("max_size_mb")
    @classmethod
    def validate_size(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"max_size_mb must be positive, got {v}")
        return v


class SearchConfig(BaseModel):
    """Semantic search defaults.

    Env vars:
        CODERECALL__SEARCH__TOP_K: Default result count
        CODERECALL__SEARCH__DIVERSITY: Max share of top_k from one file
    """

    top_k: int = Field(default=10, description="Default number of results.")
    diversity: float = Field(
        default=0.3,
        description="Max fraction of top_k results taken from a single file. "
        "1.0 disables the cap.",
    )

    @field_validator("diversity")
    @classmethod
    def validate_diversity(cls, v: float) -> float:
        if not (0.0 < v <= 1.0):
            raise ValueError(f"diversity must be in (0, 1], got {v}")
        return v


class ContextConfig(BaseModel):
    """Context builder token budget.

    Env vars:
        CODERECALL__CONTEXT__MAX_TOKENS: Total token budget per context
        CODERECALL__CONTEXT__CODE_RATIO: Share of the budget for code units
    """

    max_tokens: int = Field(default=4000, description="Total token budget.")
    code_ratio: float = Field(default=0.6, description="Share for code units.")
    docs_ratio: float = Field(default=0.2, description="Share for documentation units.")
    history_ratio: float = Field(default=0.2, description="Share for conversation history.")
    chars_per_token: int = Field(
        default=4,
        description="Average characters per token used by the estimator.",
    )
    max_dependencies: int = Field(
        default=5,
        description="Dependency units pulled into a function context.",
    )

    @model_validator(mode="after")
    def validate_ratios(self) -> "ContextConfig":
        total = self.code_ratio + self.docs_ratio + self.history_ratio
        if total > 1.0 + 1e-9:
            raise ValueError(f"context ratios must sum to <= 1.0, got {total}")
        return self


class CodeRecallConfig(BaseModel):
    """Root configuration for CodeRecall.

    All settings can be configured via:
    1. Environment variables: CODERECALL__SECTION__KEY
    2. YAML config files (repo or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
