# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Retrieval Domain Models

Pure data structures with no external dependencies. Everything here is
created per request and discarded once the response is produced.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from src.config.settings import Config, config


@dataclass(frozen=True)
class Passage:
    """A bounded span of text from one of the user's documents"""

    id: str
    document_id: str
    content: str
    user_id: str
    chunk_index: int = 0
    category_id: str | None = None
    document_title: str = ""
    created_at: str | None = None  # ISO timestamp, used as the recency tie-break
    embedding: list[float] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScoredPassage:
    """A passage plus the per-channel and fused scores"""

    passage: Passage
    vector_score: float = 0.0  # cosine similarity, 0 when the vector channel did not return it
    keyword_score: int = 0  # summed term occurrences, 0 when the lexical channel did not return it
    hybrid_score: float = 0.0
    keyword_match_ratio: float = 0.0
    normalized_vector_score: float = 0.0
    normalized_keyword_score: float = 0.0

    @property
    def id(self) -> str:
        return self.passage.id

    @property
    def content(self) -> str:
        return self.passage.content

    @property
    def title(self) -> str:
        return self.passage.document_title

    @property
    def embedding(self) -> list[float] | None:
        return self.passage.embedding

    @property
    def in_both_channels(self) -> bool:
        return self.vector_score > 0 and self.keyword_score > 0

    @property
    def relevance(self) -> float:
        """Score the diversity reranker trades off against redundancy."""
        return self.hybrid_score

    def to_source(self) -> dict[str, Any]:
        """Hand-off shape for the answer generator."""
        return {
            "id": self.passage.id,
            "document_id": self.passage.document_id,
            "title": self.passage.document_title,
            "content": self.passage.content,
            "score": round(self.hybrid_score, 4),
        }


@dataclass(frozen=True)
class QueryContext:
    """One retrieval request"""

    query: str
    user_id: str
    category_id: str | None = None
    limit: int = 5


class RetrievalState(str, Enum):
    """Orchestrator states, logged for every request."""

    BOTH_RUNNING = "both_running"
    BOTH_SUCCEEDED = "both_succeeded"
    VECTOR_FAILED = "vector_failed"
    LEXICAL_FAILED = "lexical_failed"
    BOTH_FAILED = "both_failed"
    NO_RESULTS = "no_results"
    FUSED = "fused"
    RERANKED = "reranked"


@dataclass(frozen=True)
class RetrievalWeights:
    """
    Scoring strategy for one pipeline run.

    Historical variants (with/without rerank, different weights) are just
    different instances of this object.
    """

    vector_weight: float = 0.6
    keyword_weight: float = 0.4
    boosted_vector_weight: float = 0.5
    boosted_keyword_weight: float = 0.5
    weight_shift_match_ratio: float = 0.8
    dual_channel_bonus: float = 0.1
    match_ratio_bonus_threshold: float = 0.5
    match_ratio_bonus_scale: float = 0.1
    keyword_score_cap: float = 5.0
    tie_epsilon: float = 0.01
    rerank_enabled: bool = True
    mmr_lambda: float = 0.7
    mmr_vector_damping: float = 0.8
    dedup_threshold: float = 0.8
    candidate_multiplier: int = 2

    @classmethod
    def from_config(cls, cfg: Config = config) -> "RetrievalWeights":
        return cls(
            vector_weight=cfg.VECTOR_WEIGHT,
            keyword_weight=cfg.KEYWORD_WEIGHT,
            boosted_vector_weight=cfg.BOOSTED_VECTOR_WEIGHT,
            boosted_keyword_weight=cfg.BOOSTED_KEYWORD_WEIGHT,
            weight_shift_match_ratio=cfg.WEIGHT_SHIFT_MATCH_RATIO,
            dual_channel_bonus=cfg.DUAL_CHANNEL_BONUS,
            match_ratio_bonus_threshold=cfg.MATCH_RATIO_BONUS_THRESHOLD,
            match_ratio_bonus_scale=cfg.MATCH_RATIO_BONUS_SCALE,
            keyword_score_cap=cfg.KEYWORD_SCORE_CAP,
            tie_epsilon=cfg.SCORE_TIE_EPSILON,
            rerank_enabled=cfg.DIVERSITY_RERANK_ENABLED,
            mmr_lambda=cfg.MMR_LAMBDA,
            mmr_vector_damping=cfg.MMR_VECTOR_DAMPING,
            dedup_threshold=cfg.DEDUP_THRESHOLD,
            candidate_multiplier=cfg.CANDIDATE_MULTIPLIER,
        )

    def with_overrides(self, **changes: Any) -> "RetrievalWeights":
        return replace(self, **changes)


def build_context(passages: list[ScoredPassage]) -> str:
    """Render ranked passages into the grounding block handed to the answer generator."""
    blocks = [f"Document 《{p.title}》 content:\n{p.content}" for p in passages]
    return "\n\n".join(blocks)


def collect_sources(passages: list[ScoredPassage]) -> list[str]:
    """Distinct source titles in rank order."""
    return list(dict.fromkeys(p.title for p in passages if p.title))
