"""Vector math helpers."""

import math
from typing import Sequence


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute the cosine similarity of two vectors.

    Empty vectors, vectors of unequal length and zero-magnitude vectors
    all score 0.0 so that a shape mismatch ranks a pair as unrelated
    instead of aborting a whole search.

    Args:
        a (Sequence[float]): First vector.
        b (Sequence[float]): Second vector.

    Returns:
        float: Similarity in [-1, 1].
    """
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    denom = math.sqrt(norm_a) * math.sqrt(norm_b)
    if denom == 0:
        return 0.0
    # clamp float drift
    return max(-1.0, min(1.0, dot / denom))
