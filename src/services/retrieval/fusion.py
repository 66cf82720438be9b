# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Result fusion for the hybrid pipeline.

Merges the vector and lexical channel outputs into one list scored by
normalized, dynamically weighted channel scores plus agreement bonuses.
Pure computation: no I/O, no logging side effects beyond debug output.
"""

from dataclasses import replace
from functools import cmp_to_key

from src.config.logging_config import setup_logger
from src.services.retrieval.lexical_search import match_ratio
from src.services.retrieval.models import RetrievalWeights, ScoredPassage

logger = setup_logger(__name__)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _normalize(scores: list[float], collapsed) -> list[float]:
    """
    Min-max normalize the non-zero scores; zero stays zero.

    *collapsed* maps a score to its normalized value when the non-zero range
    is a single point.
    """
    present = [s for s in scores if s > 0]
    if not present:
        return [0.0 for _ in scores]
    low, high = min(present), max(present)
    span = high - low
    normalized = []
    for s in scores:
        if s <= 0:
            normalized.append(0.0)
        elif span == 0:
            normalized.append(_clamp(collapsed(s)))
        else:
            normalized.append(_clamp((s - low) / span))
    return normalized


def _hybrid_order(tie_epsilon: float):
    """Comparator: hybrid score desc; within *tie_epsilon* match ratio desc."""

    def compare(a: ScoredPassage, b: ScoredPassage) -> int:
        if abs(a.hybrid_score - b.hybrid_score) <= tie_epsilon:
            if a.keyword_match_ratio == b.keyword_match_ratio:
                return 0
            return -1 if a.keyword_match_ratio > b.keyword_match_ratio else 1
        return -1 if a.hybrid_score > b.hybrid_score else 1

    return cmp_to_key(compare)


def fuse_results(
    vector_results: list[ScoredPassage],
    lexical_results: list[ScoredPassage],
    terms: list[str],
    limit: int,
    weights: RetrievalWeights | None = None,
) -> list[ScoredPassage]:
    """
    Fuse both channels into a single ranked list.

    Args:
        vector_results: Vector channel output (``vector_score`` set)
        lexical_results: Lexical channel output (``keyword_score`` set)
        terms: Extracted terms used for the match ratio
        limit: Max passages returned
        weights: Scoring strategy (defaults to configuration)

    Returns:
        New ScoredPassage objects, ``hybrid_score`` in [0, 1], best first.
    """
    weights = weights or RetrievalWeights.from_config()
    if limit <= 0 or (not vector_results and not lexical_results):
        return []

    merged: dict[str, ScoredPassage] = {}
    for item in vector_results:
        if item.id not in merged:
            merged[item.id] = replace(item, keyword_score=0)
    for item in lexical_results:
        existing = merged.get(item.id)
        if existing is None:
            merged[item.id] = replace(item, vector_score=0.0)
        elif existing.keyword_score == 0:
            existing.keyword_score = item.keyword_score

    candidates = list(merged.values())
    cap = weights.keyword_score_cap
    vector_scores = [c.vector_score for c in candidates]
    # Collapsed range: a lone similarity maps to 1.0, several equal ones keep their raw value.
    lone_vector = sum(1 for s in vector_scores if s > 0) == 1
    vector_norm = _normalize(vector_scores, collapsed=(lambda s: 1.0) if lone_vector else (lambda s: s))
    keyword_norm = _normalize([float(c.keyword_score) for c in candidates], collapsed=lambda s: s / cap)

    for item, nv, nk in zip(candidates, vector_norm, keyword_norm, strict=True):
        ratio = match_ratio(item.content, terms)
        if ratio > weights.weight_shift_match_ratio:
            vector_weight, keyword_weight = weights.boosted_vector_weight, weights.boosted_keyword_weight
        else:
            vector_weight, keyword_weight = weights.vector_weight, weights.keyword_weight

        score = nv * vector_weight + nk * keyword_weight
        if item.in_both_channels:
            score += weights.dual_channel_bonus
        if ratio > weights.match_ratio_bonus_threshold:
            score += ratio * weights.match_ratio_bonus_scale

        item.normalized_vector_score = nv
        item.normalized_keyword_score = nk
        item.keyword_match_ratio = ratio
        item.hybrid_score = _clamp(score)

    candidates.sort(key=_hybrid_order(weights.tie_epsilon))
    fused = candidates[:limit]

    logger.debug(
        "Fused %s vector + %s lexical → %s candidate(s), kept %s",
        len(vector_results),
        len(lexical_results),
        len(candidates),
        len(fused),
    )
    return fused


def score_single_channel(
    passages: list[ScoredPassage],
    terms: list[str],
    limit: int,
    weights: RetrievalWeights | None = None,
) -> list[ScoredPassage]:
    """
    Score one channel's output without fusing it.

    Vector passages keep their similarity as relevance; lexical passages use
    ``min(keyword_score / cap, 1)``. Channel order is preserved.
    """
    weights = weights or RetrievalWeights.from_config()
    if limit <= 0:
        return []

    scored: list[ScoredPassage] = []
    seen: set[str] = set()
    for item in passages:
        if item.id in seen:
            continue
        seen.add(item.id)
        copy = replace(item, keyword_match_ratio=match_ratio(item.content, terms))
        if copy.vector_score > 0:
            copy.normalized_vector_score = _clamp(copy.vector_score)
            copy.hybrid_score = copy.normalized_vector_score
        else:
            copy.normalized_keyword_score = _clamp(copy.keyword_score / weights.keyword_score_cap)
            copy.hybrid_score = copy.normalized_keyword_score
        scored.append(copy)
        if len(scored) == limit:
            break
    return scored
