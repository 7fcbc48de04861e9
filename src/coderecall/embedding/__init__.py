"""Embedding primitives."""

from coderecall.embedding.primitives import (
    cosine_similarities,
    cosine_similarity,
    derive_repo_id,
    derive_unit_id,
    hash_content,
    hash_file,
    normalize,
    validate_vector,
)

__all__ = [
    "cosine_similarities",
    "cosine_similarity",
    "derive_repo_id",
    "derive_unit_id",
    "hash_content",
    "hash_file",
    "normalize",
    "validate_vector",
]
