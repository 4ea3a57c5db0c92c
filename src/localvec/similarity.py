from __future__ import annotations

import math
from typing import Sequence

import numpy as np


def _as_array(vector: Sequence[float]) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64)


def normalize(vector: Sequence[float]) -> float:
    """Euclidean norm of `vector`; 0.0 for an empty vector."""
    v = _as_array(vector)
    if v.size == 0:
        return 0.0
    return float(np.sqrt(np.dot(v, v)))


def _dot(v1: np.ndarray, v2: np.ndarray) -> float:
    n = min(v1.size, v2.size)
    return float(np.dot(v1[:n], v2[:n]))


def cosine_similarity(vector1: Sequence[float], vector2: Sequence[float]) -> float:
    """Cosine similarity over the common leading prefix of both vectors.

    Returns NaN when either prefix has zero norm.
    """
    v1 = _as_array(vector1)
    v2 = _as_array(vector2)
    n = min(v1.size, v2.size)
    v1, v2 = v1[:n], v2[:n]
    norm1 = normalize(v1)
    norm2 = normalize(v2)
    if norm1 == 0 or norm2 == 0:
        return math.nan
    return _dot(v1, v2) / (norm1 * norm2)


def normalized_cosine_similarity(
    vector1: Sequence[float], norm1: float, vector2: Sequence[float], norm2: float
) -> float:
    """Cosine similarity using precomputed norms."""
    if norm1 == 0 or norm2 == 0:
        return math.nan
    return _dot(_as_array(vector1), _as_array(vector2)) / (norm1 * norm2)
