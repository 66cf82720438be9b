# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Vector search stage: semantic channel of the hybrid pipeline.
"""

from src.config.logging_config import setup_logger
from src.config.settings import config
from src.services.protocols import PassageStore
from src.services.retrieval.errors import ChannelFailure
from src.services.retrieval.models import ScoredPassage
from src.services.retrieval.store import row_to_passage

logger = setup_logger(__name__)


class VectorSearchStage:
    """Top-N passages by cosine similarity to the query vector."""

    def __init__(self, store: PassageStore, match_threshold: float | None = None):
        self.store = store
        self.match_threshold = config.MATCH_THRESHOLD if match_threshold is None else match_threshold

    async def search(
        self,
        query_embedding: list[float],
        user_id: str,
        limit: int,
        category_id: str | None = None,
        match_threshold: float | None = None,
    ) -> list[ScoredPassage]:
        """
        Run the similarity query.

        Args:
            query_embedding: Real query vector (never a placeholder)
            user_id: Owner whose passages are searched
            limit: Max passages returned
            category_id: Optional category restriction
            match_threshold: Minimum similarity (defaults to MATCH_THRESHOLD)

        Returns:
            Passages with ``vector_score`` set, similarity descending.

        Raises:
            ChannelFailure: the store could not be queried
        """
        if not query_embedding:
            raise ChannelFailure("vector", "no query embedding")
        threshold = self.match_threshold if match_threshold is None else match_threshold

        rows = await self.store.match_passages(query_embedding, user_id, threshold, limit, category_id)

        results: list[ScoredPassage] = []
        seen: set[str] = set()
        for row in rows:
            similarity = float(row.get("similarity") or 0.0)
            if similarity <= threshold:
                continue
            passage = row_to_passage(row)
            if passage.id in seen:
                continue
            if category_id and passage.category_id != category_id:
                logger.warning("Vector row %s outside category %s dropped", passage.id, category_id)
                continue
            seen.add(passage.id)
            results.append(ScoredPassage(passage=passage, vector_score=min(similarity, 1.0)))

        results.sort(key=lambda r: r.vector_score, reverse=True)
        results = results[:limit]
        logger.info("Vector search → %s passage(s) (threshold=%.2f)", len(results), threshold)
        return results
