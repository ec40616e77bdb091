"""
Vector math for clustering: cosine similarity and running means
"""

import math
from typing import List, Sequence


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        ValueError: vectors differ in length
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def running_mean(mean: float, value: float, new_count: int) -> float:
    """Mean after adding `value` as the new_count-th sample."""
    if new_count <= 1:
        return float(value)
    return mean + (value - mean) / new_count


def update_centroid(centroid: Sequence[float], vector: Sequence[float], new_count: int) -> List[float]:
    """Centroid after adding `vector` as the new_count-th member (c + (v - c) / n)."""
    if len(centroid) != len(vector):
        raise ValueError(f"Vector length mismatch: {len(centroid)} != {len(vector)}")
    if new_count <= 1:
        return [float(v) for v in vector]
    return [c + (v - c) / new_count for c, v in zip(centroid, vector)]
