"""Vector and identity primitives.

Pure functions, no state:

- normalize / cosine_similarity / cosine_similarities: numpy-backed vector math
- hash_content: SHA-256 content digest used for change detection
- derive_unit_id / derive_repo_id: deterministic identities

Zero vectors are a documented sentinel, not an error: ``normalize`` returns
them unchanged and every cosine involving one is ``0.0``. Index build stores
provider vectors as-is and search scores them through the same functions, so
both sides agree on the sentinel.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import numpy as np

from coderecall.core.errors import DegenerateVectorError, DimensionMismatchError

_UNIT_ID_HEX = 32
_REPO_ID_HEX = 16

Vector = Sequence[float]


def _as_array(vector: Vector | np.ndarray[Any, Any]) -> np.ndarray[Any, np.dtype[np.float64]]:
    return np.asarray(vector, dtype=np.float64).reshape(-1)


def normalize(vector: Vector, *, strict: bool = False) -> list[float]:
    """Scale ``vector`` to unit length.

    A zero vector comes back unchanged unless ``strict`` is set, in which case
    DegenerateVectorError is raised.
    """
    arr = _as_array(vector)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        if strict:
            raise DegenerateVectorError.zero_magnitude(len(arr))
        return arr.tolist()
    return (arr / norm).tolist()


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine of the angle between ``a`` and ``b``, in [-1, 1].

    Raises:
        DimensionMismatchError: when the vectors differ in length.
    """
    va = _as_array(a)
    vb = _as_array(b)
    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatchError.between(va.shape[0], vb.shape[0])
    denom = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


def cosine_similarities(query: Vector, vectors: Sequence[Vector]) -> list[float]:
    """Cosine of ``query`` against each row of ``vectors``.

    Same contract as cosine_similarity applied row by row: any row whose
    length differs from the query raises DimensionMismatchError, and zero
    rows score 0.0.
    """
    q = _as_array(query)
    if not vectors:
        return []
    for row in vectors:
        if len(row) != q.shape[0]:
            raise DimensionMismatchError.between(q.shape[0], len(row))

    matrix = np.asarray(vectors, dtype=np.float64)
    q_norm = float(np.linalg.norm(q))
    if q_norm == 0.0:
        return [0.0] * len(vectors)

    row_norms = np.linalg.norm(matrix, axis=1)
    dots = matrix @ q
    scores = np.zeros(len(vectors), dtype=np.float64)
    nonzero = row_norms > 0.0
    scores[nonzero] = dots[nonzero] / (row_norms[nonzero] * q_norm)
    return np.clip(scores, -1.0, 1.0).tolist()


def hash_content(content: str | bytes) -> str:
    """SHA-256 hex digest of ``content``.

    Text is hashed as UTF-8, so a ``str`` and its encoded bytes hash alike.
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Path) -> str:
    """Content hash of a file on disk (bytes, not mtime)."""
    return hash_content(path.read_bytes())


def derive_unit_id(kind: str, source_path: str, symbol_name: str | None = None) -> str:
    """Stable identity of an embeddable unit.

    Pure function of (kind, source path, symbol name). The fields are joined
    with NUL so ``("a:b", "c")`` and ``("a", "b:c")`` never collide.

    Example: ``derive_unit_id("function", "src/auth.ts", "authenticate")``
    -> ``"function-3f0c..."``
    """
    kind_value = getattr(kind, "value", kind)
    parts = [kind_value, source_path]
    if symbol_name is not None:
        parts.append(symbol_name)
    digest = hashlib.sha256("\0".join(parts).encode("utf-8")).hexdigest()
    return f"{kind_value}-{digest[:_UNIT_ID_HEX]}"


def derive_repo_id(repo_root: Path) -> str:
    """Stable id of a repository, derived from its resolved root path."""
    resolved = str(Path(repo_root).expanduser().resolve())
    return hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:_REPO_ID_HEX]


def validate_vector(vector: Vector, dimensions: int | None = None) -> bool:
    """True when ``vector`` is non-empty, finite and of the expected size."""
    if len(vector) == 0:
        return False
    if dimensions is not None and len(vector) != dimensions:
        return False
    return bool(np.all(np.isfinite(_as_array(vector))))
