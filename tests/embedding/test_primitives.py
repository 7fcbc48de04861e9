"""Tests for embedding/primitives.py.

Covers the vector and identity properties the index relies on:
- cosine similarity bounds, sign and dimension checks
- normalize magnitude and the zero-vector sentinel
- content hashing and unit id determinism
"""

from __future__ import annotations

import math
import random
from pathlib import Path

import pytest

from coderecall.core.errors import DegenerateVectorError, DimensionMismatchError
from coderecall.embedding import (
    cosine_similarities,
    cosine_similarity,
    derive_repo_id,
    derive_unit_id,
    hash_content,
    hash_file,
    normalize,
    validate_vector,
)


def _random_vectors(count: int, dims: int, seed: int = 7) -> list[list[float]]:
    rng = random.Random(seed)
    vectors = []
    while len(vectors) < count:
        v = [rng.uniform(-10, 10) for _ in range(dims)]
        if any(v):
            vectors.append(v)
    return vectors


class TestCosineSimilarity:
    """cosine_similarity properties."""

    @pytest.mark.parametrize("vector", _random_vectors(20, 8))
    def test_self_similarity_is_one(self, vector: list[float]) -> None:
        """cos(v, v) == 1 for any non-zero v."""
        assert cosine_similarity(vector, vector) == pytest.approx(1.0)

    @pytest.mark.parametrize("vector", _random_vectors(20, 8, seed=11))
    def test_opposite_is_minus_one(self, vector: list[float]) -> None:
        """cos(v, -v) == -1."""
        assert cosine_similarity(vector, [-x for x in vector]) == pytest.approx(-1.0)

    def test_orthogonal_is_zero(self) -> None:
        """Orthogonal unit vectors score 0."""
        assert cosine_similarity([1.0, 0.0, 0.0], [0.0, 1.0, 0.0]) == pytest.approx(0.0)

    def test_dimension_mismatch_raises(self) -> None:
        """[1,2,3] vs [1,2] is a DimensionMismatchError."""
        with pytest.raises(DimensionMismatchError) as exc_info:
            cosine_similarity([1, 2, 3], [1, 2])

        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    def test_zero_vector_scores_zero(self) -> None:
        """The zero vector is a sentinel, not an error."""
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_result_is_bounded(self) -> None:
        """Rounding never pushes the result outside [-1, 1]."""
        for a, b in zip(_random_vectors(50, 16, seed=1), _random_vectors(50, 16, seed=2)):
            assert -1.0 <= cosine_similarity(a, b) <= 1.0


class TestCosineSimilarities:
    """Batch form agrees with the scalar form."""

    def test_matches_scalar(self) -> None:
        query = [1.0, 2.0, 3.0]
        rows = [[1.0, 0.0, 0.0], [0.0, 0.0, 0.0], [-1.0, -2.0, -3.0], [3.0, 2.0, 1.0]]

        batch = cosine_similarities(query, rows)

        assert batch == pytest.approx([cosine_similarity(query, r) for r in rows])

    def test_empty_rows(self) -> None:
        assert cosine_similarities([1.0], []) == []

    def test_zero_query(self) -> None:
        assert cosine_similarities([0.0, 0.0], [[1.0, 1.0], [2.0, 0.0]]) == [0.0, 0.0]

    def test_row_dimension_mismatch_raises(self) -> None:
        with pytest.raises(DimensionMismatchError):
            cosine_similarities([1.0, 2.0], [[1.0, 2.0], [1.0, 2.0, 3.0]])


class TestNormalize:
    """normalize properties."""

    def test_three_four_five(self) -> None:
        """[3, 4] -> [0.6, 0.8]."""
        assert normalize([3, 4]) == pytest.approx([0.6, 0.8])

    @pytest.mark.parametrize("vector", _random_vectors(20, 5, seed=3))
    def test_unit_magnitude(self, vector: list[float]) -> None:
        assert math.sqrt(sum(x * x for x in normalize(vector))) == pytest.approx(1.0)

    def test_zero_vector_unchanged(self) -> None:
        assert normalize([0.0, 0.0, 0.0]) == [0.0, 0.0, 0.0]

    def test_zero_vector_strict_raises(self) -> None:
        with pytest.raises(DegenerateVectorError):
            normalize([0.0, 0.0], strict=True)


class TestHashing:
    """hash_content and hash_file."""

    def test_deterministic(self) -> None:
        assert hash_content("function a() {}") == hash_content("function a() {}")

    @pytest.mark.parametrize(
        "variant",
        ["function a() {} ", "function a() {}\n", "function b() {}", "Function a() {}"],
    )
    def test_single_character_change_changes_hash(self, variant: str) -> None:
        """Any change, whitespace included, changes the digest."""
        assert hash_content(variant) != hash_content("function a() {}")

    def test_text_and_bytes_agree(self) -> None:
        assert hash_content("héllo") == hash_content("héllo".encode())

    def test_hash_file_matches_content(self, tmp_path: Path) -> None:
        target = tmp_path / "a.ts"
        target.write_text("export const x = 1;\n")

        assert hash_file(target) == hash_content("export const x = 1;\n")

    def test_sha256_hex(self) -> None:
        assert len(hash_content("")) == 64


class TestIdentities:
    """derive_unit_id and derive_repo_id."""

    def test_unit_id_deterministic(self) -> None:
        a = derive_unit_id("function", "src/auth.ts", "authenticate")
        b = derive_unit_id("function", "src/auth.ts", "authenticate")

        assert a == b
        assert a.startswith("function-")

    def test_unit_id_distinguishes_names(self) -> None:
        assert derive_unit_id("function", "src/auth.ts", "a") != derive_unit_id(
            "function", "src/auth.ts", "b"
        )

    def test_unit_id_separator_cannot_collide(self) -> None:
        """Joined fields are unambiguous."""
        assert derive_unit_id("function", "a:b", "c") != derive_unit_id("function", "a", "b:c")

    def test_file_unit_without_name(self) -> None:
        assert derive_unit_id("file", "src/a.ts") != derive_unit_id("file", "src/b.ts")

    def test_repo_id_stable(self, tmp_path: Path) -> None:
        assert derive_repo_id(tmp_path) == derive_repo_id(tmp_path / ".")
        assert len(derive_repo_id(tmp_path)) == 16


class TestValidateVector:
    def test_accepts_finite(self) -> None:
        assert validate_vector([0.1, 0.2], 2)

    @pytest.mark.parametrize(
        ("vector", "dims"),
        [([], None), ([1.0, 2.0], 3), ([math.nan, 1.0], None), ([math.inf], None)],
    )
    def test_rejects(self, vector: list[float], dims: int | None) -> None:
        assert not validate_vector(vector, dims)
