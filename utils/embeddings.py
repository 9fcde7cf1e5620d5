"""
Vector and text helpers for the sales detectors.

Embeddings arrive as plain lists of floats from the upstream NLP service;
numpy does the arithmetic.
"""

from typing import Iterable, List, Optional, Sequence

import numpy as np


def clamp01(x: float) -> float:
    return min(1.0, max(0.0, x))


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for empty, mismatched or zero-norm vectors."""
    if len(vec1) == 0 or len(vec2) == 0 or len(vec1) != len(vec2):
        return 0.0
    a = np.asarray(vec1, dtype=float)
    b = np.asarray(vec2, dtype=float)
    norm1 = np.linalg.norm(a)
    norm2 = np.linalg.norm(b)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(a, b) / (norm1 * norm2))


def mean_embedding(vectors: Sequence[Sequence[float]]) -> Optional[List[float]]:
    """Element-wise mean. None when empty, zero-dimensional, or dimensions differ."""
    if not vectors:
        return None
    dim = len(vectors[0])
    if dim == 0 or any(len(v) != dim for v in vectors):
        return None
    return np.mean(np.asarray(vectors, dtype=float), axis=0).tolist()


def normalize_keywords(keywords: Iterable[str]) -> List[str]:
    """Lowercased, stripped, de-duplicated keywords in first-seen order."""
    seen = []
    for k in keywords:
        kk = str(k).strip().lower()
        if kk and kk not in seen:
            seen.append(kk)
    return seen


def keyword_overlap(left: Iterable[str], right: Iterable[str]) -> int:
    """How many of `left` (after normalization) appear in `right`."""
    right_set = set(normalize_keywords(right))
    if not right_set:
        return 0
    return sum(1 for k in left if str(k).strip().lower() in right_set)


def snippet(text: str, max_len: int) -> str:
    t = (text or "").strip()
    if len(t) <= max_len:
        return t
    return t[:max(0, max_len - 3)] + "..."
