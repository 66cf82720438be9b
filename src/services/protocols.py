# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Service Protocols (Interfaces)

Defines the contracts for the retrieval collaborators so they can be mocked in
tests and swapped in production without coupling to concrete implementations.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from src.services.retrieval.models import ScoredPassage


# ---------------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------------
@runtime_checkable
class EmbeddingService(Protocol):
    """Contract for query embedding generation.

    Implementations raise EmbeddingFailure when no vector can be produced;
    they never return a placeholder vector.
    """

    def embed_query(self, query_text: str) -> list[float]:
        """Generate an embedding vector for a single query string."""
        ...


# ---------------------------------------------------------------------------
# Term extraction
# ---------------------------------------------------------------------------
@runtime_checkable
class TermExtractor(Protocol):
    """Contract for keyword / key-phrase providers.

    Returns terms most-salient first. Remote providers may raise; the
    chained extractor absorbs failures into an empty list.
    """

    async def extract(self, text: str, max_terms: int) -> list[str]:
        """Extract up to *max_terms* search terms from *text*."""
        ...


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
@runtime_checkable
class PassageStore(Protocol):
    """Contract for the passage store backing both search channels.

    Both queries are restricted to rows owned by *user_id* and, when given,
    to *category_id*. Implementations raise ChannelFailure on data-access errors.
    """

    async def match_passages(
        self,
        query_embedding: list[float],
        user_id: str,
        match_threshold: float,
        match_count: int,
        category_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Nearest passages by cosine similarity, each row carrying ``similarity``."""
        ...

    async def find_passages_containing(
        self,
        term: str,
        user_id: str,
        limit: int,
        category_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Passages whose content contains *term* (case-insensitive substring)."""
        ...


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
@runtime_checkable
class RetrievalService(Protocol):
    """Contract for the hybrid retrieval entry point used by the API and CLI."""

    async def search(
        self,
        query: str,
        user_id: str,
        limit: int | None = None,
        category_id: str | None = None,
    ) -> list[ScoredPassage]:
        """Full pipeline: both channels → fusion → diversity rerank."""
        ...
