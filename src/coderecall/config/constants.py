"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are storage format versions, file names, and hard caps.

For configurable values, see models.py.
"""

# =============================================================================
# Storage layout
# =============================================================================

CONFIG_DIRNAME = ".coderecall"
"""Per-repository config directory (never indexed)."""

CONFIG_FILENAME = "config.yaml"

INDEX_DB_NAME = "index.db"
CACHE_DB_NAME = "cache.db"
BUILD_LOCK_NAME = "build.lock"

INDEX_FORMAT_VERSION = 1
"""Bumped whenever the persisted unit layout changes; older stores load empty."""

# =============================================================================
# Hard caps
# =============================================================================

SEARCH_MAX_TOP_K = 200
"""Maximum results for semantic search."""

CONTEXT_MAX_TOKENS = 200_000
"""Largest accepted context budget."""

SUMMARY_MAX_CHARS = 100
"""Unit summaries are cut to this length."""
