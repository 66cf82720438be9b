# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Pairwise similarity helpers used by the diversity reranker.

- cosine_similarity: embedding-space similarity (numpy)
- jaccard_similarity: word-set overlap of two passages
"""

import re
from collections.abc import Sequence

import numpy as np

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def cosine_similarity(vec_a: Sequence[float] | None, vec_b: Sequence[float] | None) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 when either vector is missing, empty, zero-norm, or when the
    dimensions differ.
    """
    if vec_a is None or vec_b is None or len(vec_a) == 0 or len(vec_a) != len(vec_b):
        return 0.0
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


def word_set(text: str | None) -> set[str]:
    """Lowercase, punctuation-stripped words longer than one character."""
    if not text:
        return set()
    cleaned = _PUNCTUATION_RE.sub("", text.lower())
    return {word for word in cleaned.split() if len(word) > 1}


def jaccard_similarity(text_a: str | None, text_b: str | None) -> float:
    """Jaccard overlap of the word sets of two texts (0.0 when both are empty)."""
    words_a = word_set(text_a)
    words_b = word_set(text_b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)
