"""Dependency-aware cache of AI-derived results."""

from coderecall.cache.models import CacheEntryRow, CacheStats
from coderecall.cache.ops import DependencyAwareCache, make_cache_key

__all__ = [
    "CacheEntryRow",
    "CacheStats",
    "DependencyAwareCache",
    "make_cache_key",
]
