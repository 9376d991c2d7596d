#!/usr/bin/env python3
"""
Similarity Calculator - Cosine similarity between embedding vectors.
"""
from typing import Optional, Sequence

import numpy as np


class SimilarityCalculator:
    """Calculate cosine similarity between vectors."""

    @staticmethod
    def calculate(vec1: Optional[Sequence[float]], vec2: Optional[Sequence[float]]) -> float:
        """
        Calculate cosine similarity floored at zero.

        Args:
            vec1: First vector
            vec2: Second vector

        Returns:
            Similarity in [0.0, 1.0]. Returns 0.0 for empty, zero-magnitude,
            non-finite or mismatched-dimension input instead of raising.
        """
        if vec1 is None or vec2 is None:
            return 0.0

        try:
            a = np.asarray(vec1, dtype=np.float64).ravel()
            b = np.asarray(vec2, dtype=np.float64).ravel()
        except (TypeError, ValueError):
            return 0.0

        if a.size == 0 or a.shape != b.shape:
            return 0.0
        if not (np.all(np.isfinite(a)) and np.all(np.isfinite(b))):
            return 0.0

        norm1 = np.linalg.norm(a)
        norm2 = np.linalg.norm(b)
        if norm1 == 0 or norm2 == 0:
            return 0.0

        raw_cosine = float(np.dot(a, b) / (norm1 * norm2))
        return max(0.0, min(1.0, raw_cosine))
