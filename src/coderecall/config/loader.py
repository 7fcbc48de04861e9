"""Layered configuration.

Sources, lowest precedence first: built-in defaults, the global file
``~/.config/coderecall/config.yaml``, the repository file
``<repo>/.coderecall/config.yaml``, ``CODERECALL__SECTION__KEY`` environment
variables, and finally keyword overrides passed to ``load_config``.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from coderecall.config.constants import CONFIG_DIRNAME, CONFIG_FILENAME
from coderecall.config.models import (
    CacheConfig,
    CodeRecallConfig,
    ContextConfig,
    EmbeddingConfig,
    IndexerConfig,
    LoggingConfig,
    SearchConfig,
    StorageConfig,
)
from coderecall.core.errors import ConfigError
from coderecall.embedding.primitives import derive_repo_id

GLOBAL_CONFIG_PATH = Path("~/.config/coderecall/config.yaml").expanduser()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _file_layers(repo_root: Path) -> dict[str, Any]:
    """Global YAML overlaid with the repository's YAML."""
    return _deep_merge(
        _load_yaml(GLOBAL_CONFIG_PATH),
        _load_yaml(repo_root / CONFIG_DIRNAME / CONFIG_FILENAME),
    )


class _FileLayerSource(PydanticBaseSettingsSource):
    """Feeds already-merged YAML data to pydantic-settings."""

    def __init__(self, settings_cls: type[BaseSettings], data: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._data = data

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        value = self._data.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return self._data


def _settings_for(file_data: dict[str, Any]) -> type[BaseSettings]:
    # A class per load keeps the YAML out of shared state, so concurrent
    # loads for different repositories never see each other's files.

    class CodeRecallSettings(BaseSettings):
        model_config = SettingsConfigDict(
            env_prefix="CODERECALL__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        storage: StorageConfig = StorageConfig()
        indexer: IndexerConfig = IndexerConfig()
        embedding: EmbeddingConfig = EmbeddingConfig()
        cache: CacheConfig = CacheConfig()
        search: SearchConfig = SearchConfig()
        context: ContextConfig = ContextConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (init_settings, env_settings, _FileLayerSource(settings_cls, file_data))

    return CodeRecallSettings


CodeRecallSettings = _settings_for({})


def load_config(repo_root: Path | None = None, **overrides: Any) -> CodeRecallConfig:
    """Resolve the configuration for ``repo_root`` (default: cwd).

    Raises:
        ConfigError: a YAML file does not parse, or a value fails validation.
    """
    settings_cls = _settings_for(_file_layers(repo_root or Path.cwd()))
    try:
        settings = settings_cls(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError.invalid_value(field, first.get("input"), first["msg"]) from e
    return CodeRecallConfig.model_validate(settings.model_dump())


def get_repo_data_dir(config: CodeRecallConfig, repo_root: Path) -> Path:
    """``<data_dir>/<repo_id>``, where indexes and caches for one repository live."""
    return config.storage.resolve_data_dir() / derive_repo_id(repo_root)
