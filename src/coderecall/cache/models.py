"""Cache entry table and result types."""

from __future__ import annotations

import json
from dataclasses import dataclass

from sqlmodel import Field, SQLModel

from coderecall.core.errors import CacheCorruptionError


class CacheEntryRow(SQLModel, table=True):
    """One cached AI result, scoped by provider.

    ``dependency_hashes_json`` is an ordered ``[[path, sha256], ...]`` list
    captured at write time. ``last_access`` is a strictly increasing tick,
    ``inserted_seq`` breaks LRU ties by insertion order.
    """

    __tablename__ = "cache_entries"

    provider_name: str = Field(primary_key=True)
    key: str = Field(primary_key=True)
    value: str
    dependency_hashes_json: str = "[]"
    size_bytes: int
    created_at: float
    last_access: int = Field(index=True)
    inserted_seq: int = Field(index=True)

    def get_dependency_hashes(self) -> list[tuple[str, str]]:
        """Decoded dependency list.

        Raises:
            CacheCorruptionError: the stored row cannot be decoded.
        """
        pairs = decode_dependency_hashes(
            self.dependency_hashes_json, key=self.key, provider_name=self.provider_name
        )
        if not isinstance(self.value, str):
            raise CacheCorruptionError.bad_entry(self.key, self.provider_name, "value is not text")
        return pairs


CACHE_TABLES: list[type[SQLModel]] = [CacheEntryRow]


@dataclass(frozen=True)
class CacheStats:
    entries: int
    total_bytes: int
    max_bytes: int
    hits: int
    misses: int
    evictions: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    @property
    def utilization(self) -> float:
        return self.total_bytes / self.max_bytes if self.max_bytes else 0.0


def decode_dependency_hashes(raw: str, *, key: str, provider_name: str) -> list[tuple[str, str]]:
    """``[[path, hash], ...]`` JSON → list of pairs, CacheCorruptionError otherwise."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise CacheCorruptionError.bad_entry(key, provider_name, f"bad JSON: {e}") from e
    if not isinstance(data, list):
        raise CacheCorruptionError.bad_entry(key, provider_name, "dependencies not a list")
    pairs: list[tuple[str, str]] = []
    for item in data:
        if not isinstance(item, list) or len(item) != 2 or not all(isinstance(p, str) for p in item):
            raise CacheCorruptionError.bad_entry(key, provider_name, f"bad dependency record: {item!r}")
        pairs.append((item[0], item[1]))
    return pairs
