"""
Vector codec: blob (de)serialization and similarity ranking.
Pure functions, no model or database access.
"""

from typing import Iterable, List, Sequence, Union
import numpy as np

from ..core.errors import DimensionMismatch
from .types import QueryResult, SearchCandidate

# Stored blobs are little-endian float32, independent of host byte order
VECTOR_DTYPE = np.dtype("<f4")

VectorLike = Union[np.ndarray, Sequence[float]]


def serialize_vector(vector: VectorLike) -> bytes:
    """Convert a vector to the flat byte form stored in the database."""
    return np.asarray(vector, dtype=VECTOR_DTYPE).reshape(-1).tobytes()


def deserialize_vector(blob: bytes) -> np.ndarray:
    """Rebuild a float32 vector from its stored bytes.

    The result is a writable copy, not a view on the blob.
    """
    if len(blob) % VECTOR_DTYPE.itemsize != 0:
        raise ValueError(
            f"Vector blob length {len(blob)} is not a multiple of {VECTOR_DTYPE.itemsize}"
        )
    return np.frombuffer(blob, dtype=VECTOR_DTYPE).astype(np.float32)


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Cosine similarity in [-1, 1].

    Inputs are not assumed to be normalized. A zero vector has no direction
    and scores 0.0 against anything.
    """
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)

    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(a.shape[0], b.shape[0])

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    # Rounding can push |a.a| / (|a||a|) a hair past 1
    return max(-1.0, min(1.0, similarity))


def find_similar(
    query_vector: VectorLike,
    candidates: Iterable[SearchCandidate],
    limit: int = 10,
    min_similarity: float = 0.0,
) -> List[QueryResult]:
    """Rank candidates against a query vector.

    Brute-force linear scan. Results below ``min_similarity`` are dropped,
    the rest sorted by descending score (ties keep candidate order) and
    truncated to ``limit``.
    """
    if limit <= 0:
        return []

    scored = []
    for candidate in candidates:
        score = cosine_similarity(query_vector, candidate.vector)
        if score >= min_similarity:
            scored.append(QueryResult(id=candidate.id, score=score))

    # sorted() is stable, so equal scores stay in enumeration order
    scored = sorted(scored, key=lambda result: result.score, reverse=True)
    return scored[:limit]
