"""Vector similarity helpers for face embeddings."""

from collections.abc import Sequence

import numpy as np


class DimensionMismatch(ValueError):
    """Raised when two embeddings of different lengths are compared."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Embedding length mismatch: {left} != {right}")
        self.left = left
        self.right = right


def _as_vector(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=np.float64).ravel()


def similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """
    Cosine similarity of two L2-normalized embeddings.

    For unit vectors the dot product is the cosine similarity, so no further
    normalization happens here.

    Args:
        a: First embedding
        b: Second embedding

    Returns:
        Dot product of the two vectors, nominally in [-1.0, 1.0]

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    left = _as_vector(a)
    right = _as_vector(b)

    if left.shape[0] != right.shape[0]:
        raise DimensionMismatch(left.shape[0], right.shape[0])

    return float(np.dot(left, right))


def safe_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Like similarity(), but returns 0.0 instead of raising on a length mismatch."""
    try:
        return similarity(a, b)
    except DimensionMismatch:
        return 0.0


def l2_normalize(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    """
    Scale a vector to unit Euclidean length.

    A zero vector is returned unchanged (as zeros) instead of being divided
    by a zero norm.
    """
    values = _as_vector(vector)
    norm = float(np.sqrt(np.sum(values * values)))

    if norm == 0.0:
        return values.copy()

    return values / norm
