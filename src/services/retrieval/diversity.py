# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Diversity reranking (Maximal Marginal Relevance)

Relevance-ranked lists are often dominated by near-identical passages from the
same region of a document. MMR picks the final top-M trading a controlled
amount of relevance for coverage, then a Jaccard pass drops near-duplicates.
"""

from collections.abc import Sequence

from src.config.logging_config import setup_logger
from src.config.settings import config
from src.services.retrieval.models import ScoredPassage
from src.utils.similarity import cosine_similarity, jaccard_similarity

logger = setup_logger(__name__)


def passage_similarity(a: ScoredPassage, b: ScoredPassage, vector_damping: float) -> float:
    """Redundancy between two passages: max of word overlap and damped embedding cosine."""
    text_similarity = jaccard_similarity(a.content, b.content)
    vector_similarity = 0.0
    if a.embedding and b.embedding:
        vector_similarity = cosine_similarity(a.embedding, b.embedding)
    return max(text_similarity, vector_similarity * vector_damping)


def deduplicate(passages: list[ScoredPassage], threshold: float) -> list[ScoredPassage]:
    """Walk in order and drop any passage whose Jaccard with a kept one exceeds *threshold*."""
    kept: list[ScoredPassage] = []
    for passage in passages:
        duplicate_of = next((k for k in kept if jaccard_similarity(passage.content, k.content) > threshold), None)
        if duplicate_of is not None:
            logger.debug("Dropping %s: near-duplicate of %s", passage.id, duplicate_of.id)
            continue
        kept.append(passage)
    return kept


def diversity_rerank(
    candidates: list[ScoredPassage],
    query_embedding: Sequence[float] | None,
    lambda_: float | None = None,
    max_results: int | None = None,
    vector_damping: float | None = None,
    dedup_threshold: float | None = None,
) -> list[ScoredPassage]:
    """
    Select up to *max_results* passages balancing relevance against redundancy.

    Args:
        candidates: Relevance-sorted passages (best first)
        query_embedding: Query vector. Relevance is the score each candidate
            already carries, so the reranker does not rescore against it
        lambda_: Relevance weight in [0, 1] (defaults to MMR_LAMBDA)
        max_results: Output size M (defaults to DEFAULT_RESULT_LIMIT)
        vector_damping: Multiplier on embedding cosine in the redundancy term
        dedup_threshold: Jaccard above which a selected passage is dropped

    Returns:
        At most M passages. Input of size <= M is returned unchanged.
    """
    lambda_ = config.MMR_LAMBDA if lambda_ is None else lambda_
    max_results = config.DEFAULT_RESULT_LIMIT if max_results is None else max_results
    vector_damping = config.MMR_VECTOR_DAMPING if vector_damping is None else vector_damping
    dedup_threshold = config.DEDUP_THRESHOLD if dedup_threshold is None else dedup_threshold

    if not candidates or max_results <= 0:
        return []
    if len(candidates) <= max_results:
        return list(candidates)

    remaining = list(candidates)
    relevance = {c.id: c.relevance for c in remaining}

    # Seed: highest relevance, earliest on ties.
    seed_index = 0
    for i, candidate in enumerate(remaining):
        if relevance[candidate.id] > relevance[remaining[seed_index].id]:
            seed_index = i
    selected = [remaining.pop(seed_index)]

    while remaining and len(selected) < max_results:
        best_index = -1
        best_score = float("-inf")
        for i, candidate in enumerate(remaining):
            penalty = max(passage_similarity(candidate, chosen, vector_damping) for chosen in selected)
            mmr_score = lambda_ * relevance[candidate.id] - (1 - lambda_) * penalty
            if mmr_score > best_score:
                best_score = mmr_score
                best_index = i
        chosen = remaining.pop(best_index)
        selected.append(chosen)
        logger.debug("MMR pick %s: %s (mmr=%.4f)", len(selected), chosen.id, best_score)

    reranked = deduplicate(selected, dedup_threshold)
    logger.info(
        "Diversity rerank: %s candidate(s) → %s selected → %s after dedup",
        len(candidates),
        len(selected),
        len(reranked),
    )
    return reranked
