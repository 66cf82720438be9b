# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Hybrid Retrieval Service
Runs the vector and lexical channels concurrently, fuses their results and
reranks the fused list for diversity.
"""

import asyncio
import time

from src.config.logging_config import setup_logger
from src.config.settings import config
from src.services.common.embedder import QueryEmbedder
from src.services.protocols import EmbeddingService, PassageStore, TermExtractor
from src.services.retrieval.diversity import diversity_rerank
from src.services.retrieval.errors import (
    ChannelFailure,
    EmbeddingDimensionError,
    EmbeddingFailure,
    MalformedInput,
    RetrievalUnavailable,
)
from src.services.retrieval.fusion import fuse_results, score_single_channel
from src.services.retrieval.keywords import build_term_extractor
from src.services.retrieval.lexical_search import LexicalSearchStage
from src.services.retrieval.models import QueryContext, RetrievalState, RetrievalWeights, ScoredPassage
from src.services.retrieval.store import SupabasePassageStore
from src.services.retrieval.vector_search import VectorSearchStage

logger = setup_logger(__name__)


class HybridRetrieval:
    """
    Hybrid retrieval orchestrator

    Pipeline:
    - embedding + keyword extraction (concurrent)
    - vector channel + lexical channel (concurrent)
    - every stage (embedding, extraction, each store query) bounded by the stage timeout
    - fusion when both channels returned passages, single-channel scoring otherwise
    - MMR diversity rerank down to the requested limit

    Channel failures degrade to the other channel. Only the loss of both
    channels is raised (RetrievalUnavailable); no results is an empty list.
    """

    def __init__(
        self,
        store: PassageStore | None = None,
        embedder: EmbeddingService | None = None,
        term_extractor: TermExtractor | None = None,
        weights: RetrievalWeights | None = None,
        stage_timeout: float | None = None,
    ):
        """Initialize the pipeline.

        Args:
            store: Passage store backing both channels. Falls back to SupabasePassageStore.
            embedder: Query embedder. Created lazily (QueryEmbedder) when not provided.
            term_extractor: Keyword provider. Created lazily from configuration when not provided.
            weights: Scoring strategy. Defaults to RetrievalWeights.from_config().
            stage_timeout: Per-channel timeout in seconds (SEARCH_STAGE_TIMEOUT).
        """
        self.store: PassageStore = store or SupabasePassageStore()
        self.embedder: EmbeddingService | None = embedder
        self.term_extractor: TermExtractor | None = term_extractor
        self.weights = weights or RetrievalWeights.from_config()
        self.stage_timeout = stage_timeout or config.SEARCH_STAGE_TIMEOUT
        self.vector_stage = VectorSearchStage(self.store)
        self.lexical_stage = LexicalSearchStage(self.store)

    def _get_embedder(self) -> EmbeddingService:
        """Lazy load embedder (only when needed)"""
        if self.embedder is None:
            self.embedder = QueryEmbedder()
        return self.embedder

    def _get_term_extractor(self) -> TermExtractor:
        if self.term_extractor is None:
            self.term_extractor = build_term_extractor()
        return self.term_extractor

    @staticmethod
    def _validate(query: str, user_id: str, limit: int | None, category_id: str | None) -> QueryContext:
        if not user_id or not str(user_id).strip():
            raise MalformedInput("user_id is required")
        if not query or not query.strip():
            raise MalformedInput("query must not be empty")
        if len(query) > config.MAX_QUERY_LENGTH:
            raise MalformedInput(f"query exceeds {config.MAX_QUERY_LENGTH} characters")
        limit = config.DEFAULT_RESULT_LIMIT if limit is None else limit
        if limit < 1:
            raise MalformedInput("limit must be at least 1")
        return QueryContext(query=query.strip(), user_id=str(user_id), category_id=category_id or None, limit=limit)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------
    async def _embed(self, query: str) -> list[float]:
        """Query vector, bounded by the stage timeout; a timeout is an embedding failure."""
        t0 = time.time()
        try:
            embedding = await asyncio.wait_for(
                asyncio.to_thread(self._get_embedder().embed_query, query), timeout=self.stage_timeout
            )
        except (EmbeddingFailure, EmbeddingDimensionError):
            raise
        except asyncio.TimeoutError as e:
            raise EmbeddingFailure(f"timed out after {self.stage_timeout:g}s") from e
        except Exception as e:
            raise EmbeddingFailure(f"{type(e).__name__}: {e}") from e
        if not embedding:
            raise EmbeddingFailure("embedder returned no vector")
        logger.info("  embed: %.1fs", time.time() - t0)
        return embedding

    async def _extract_terms(self, query: str) -> list[str]:
        """Search terms, bounded by the stage timeout. Any failure yields no terms."""
        try:
            return await asyncio.wait_for(
                self._get_term_extractor().extract(query, config.KEYWORD_MAX_TERMS), timeout=self.stage_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Keyword extraction timed out after %gs, using raw query", self.stage_timeout)
            return []
        except Exception as e:
            logger.warning("Keyword extraction failed, using raw query: %s", e)
            return []

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------
    async def _vector_channel(self, embedding_task: asyncio.Task, ctx: QueryContext, count: int) -> list[ScoredPassage]:
        try:
            query_embedding = await embedding_task
        except EmbeddingFailure as e:
            logger.warning("Embedding failed, vector channel skipped: %s", e)
            raise
        return await self._timed(
            self.vector_stage.search(query_embedding, ctx.user_id, count, category_id=ctx.category_id), "vector"
        )

    async def _lexical_channel(self, terms_task: asyncio.Task, ctx: QueryContext, count: int) -> list[ScoredPassage]:
        terms = await terms_task
        if not terms:
            logger.info("No keywords extracted, lexical channel searches the raw query")
        return await self._timed(
            self.lexical_stage.fetch(terms, ctx.user_id, count, category_id=ctx.category_id, query=ctx.query),
            "lexical",
        )

    async def _timed(self, coro, label: str) -> list[ScoredPassage]:
        """Run a store query with the stage timeout; a timeout counts as a channel failure."""
        try:
            return await asyncio.wait_for(coro, timeout=self.stage_timeout)
        except asyncio.TimeoutError as e:
            logger.warning("  %s timed out after %gs", label, self.stage_timeout)
            raise ChannelFailure(label, f"timed out after {self.stage_timeout:g}s") from e

    @staticmethod
    def _settled_value(task: asyncio.Task):
        """Task result if it completed successfully, else None."""
        if task.done() and not task.cancelled() and task.exception() is None:
            return task.result()
        return None

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------
    async def search(
        self,
        query: str,
        user_id: str,
        limit: int | None = None,
        category_id: str | None = None,
    ) -> list[ScoredPassage]:
        """
        Retrieve the passages that best ground an answer to *query*.

        Args:
            query: User question
            user_id: Owner whose documents are searched
            limit: Max passages returned (defaults to DEFAULT_RESULT_LIMIT)
            category_id: Optional category restriction

        Returns:
            Up to *limit* passages, best first. Empty when nothing matched.

        Raises:
            MalformedInput: invalid request (raised before any I/O)
            EmbeddingDimensionError: embedding model and deployment disagree
            RetrievalUnavailable: both channels failed
        """
        ctx = self._validate(query, user_id, limit, category_id)
        t0 = time.time()
        candidate_count = ctx.limit * self.weights.candidate_multiplier
        logger.info(
            "Retrieval state: %s (user=%s, category=%s, limit=%s)",
            RetrievalState.BOTH_RUNNING.value,
            ctx.user_id,
            ctx.category_id,
            ctx.limit,
        )

        embedding_task = asyncio.create_task(self._embed(ctx.query))
        terms_task = asyncio.create_task(self._extract_terms(ctx.query))
        try:
            vector_outcome, lexical_outcome = await asyncio.gather(
                self._vector_channel(embedding_task, ctx, candidate_count),
                self._lexical_channel(terms_task, ctx, candidate_count),
                return_exceptions=True,
            )
        finally:
            for task in (embedding_task, terms_task):
                if not task.done():
                    task.cancel()

        for outcome in (vector_outcome, lexical_outcome):
            if isinstance(outcome, EmbeddingDimensionError):
                raise outcome
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        query_embedding = self._settled_value(embedding_task)
        terms = self._settled_value(terms_task) or []

        vector_failed = isinstance(vector_outcome, Exception)
        lexical_failed = isinstance(lexical_outcome, Exception)
        if vector_failed and lexical_failed:
            logger.error(
                "Retrieval state: %s (vector: %s; lexical: %s)",
                RetrievalState.BOTH_FAILED.value,
                vector_outcome,
                lexical_outcome,
            )
            raise RetrievalUnavailable("Both search channels failed") from lexical_outcome

        if vector_failed:
            state = RetrievalState.VECTOR_FAILED
            logger.warning("Retrieval state: %s (%s)", state.value, vector_outcome)
        elif lexical_failed:
            state = RetrievalState.LEXICAL_FAILED
            logger.warning("Retrieval state: %s (%s)", state.value, lexical_outcome)
        else:
            state = RetrievalState.BOTH_SUCCEEDED
            logger.info("Retrieval state: %s", state.value)

        vector_results: list[ScoredPassage] = [] if vector_failed else vector_outcome
        lexical_results: list[ScoredPassage] = [] if lexical_failed else lexical_outcome
        logger.info(
            "  search: %.1fs (vec=%s, lexical=%s, terms=%s)",
            time.time() - t0,
            len(vector_results),
            len(lexical_results),
            terms,
        )

        if not vector_results and not lexical_results:
            logger.info("Retrieval state: %s", RetrievalState.NO_RESULTS.value)
            return []

        try:
            ranked = self._rank(vector_results, lexical_results, terms, query_embedding, ctx, candidate_count)
        except Exception:
            logger.exception("Fusion/rerank failed, falling back to vector-only results")
            if query_embedding and vector_results:
                return score_single_channel(vector_results, terms, ctx.limit, self.weights)
            return []

        logger.info("Retrieval complete: %s passage(s) in %.1fs", len(ranked), time.time() - t0)
        return ranked

    def _rank(
        self,
        vector_results: list[ScoredPassage],
        lexical_results: list[ScoredPassage],
        terms: list[str],
        query_embedding: list[float] | None,
        ctx: QueryContext,
        candidate_count: int,
    ) -> list[ScoredPassage]:
        """Fuse (or score the lone channel), then rerank down to the requested limit."""
        weights = self.weights
        keep = candidate_count if weights.rerank_enabled else ctx.limit

        if vector_results and lexical_results:
            ranked = fuse_results(vector_results, lexical_results, terms, keep, weights)
            logger.info("Retrieval state: %s (%s candidate(s))", RetrievalState.FUSED.value, len(ranked))
        else:
            ranked = score_single_channel(vector_results or lexical_results, terms, keep, weights)

        if weights.rerank_enabled:
            ranked = diversity_rerank(
                ranked,
                query_embedding,
                lambda_=weights.mmr_lambda,
                max_results=ctx.limit,
                vector_damping=weights.mmr_vector_damping,
                dedup_threshold=weights.dedup_threshold,
            )
            logger.info("Retrieval state: %s (%s passage(s))", RetrievalState.RERANKED.value, len(ranked))

        return ranked[: ctx.limit]
