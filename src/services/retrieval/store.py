# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Supabase passage store

Backs both search channels:
- match_passages: pgvector cosine search via the
  ``search_similar_chunks_with_category`` RPC
- find_passages_containing: ILIKE substring match on ``document_chunks``
  joined to the owning ``documents`` row

Both are restricted to the requesting user and (optionally) one category.
"""

import asyncio
import json
import os
from typing import Any

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError
from supabase import AsyncClient, create_async_client

from src.config.logging_config import setup_logger
from src.services.retrieval.errors import ChannelFailure
from src.services.retrieval.models import Passage

logger = setup_logger(__name__)

VECTOR_SEARCH_RPC = "search_similar_chunks_with_category"
CHUNKS_TABLE = "document_chunks"
_LEXICAL_COLUMNS = "id, content, chunk_index, created_at, document_id, documents!inner(id, title, user_id, category_id)"


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so a term is matched literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_embedding(value: Any) -> list[float] | None:
    """pgvector columns arrive as '[0.1,0.2,...]' strings through PostgREST."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    if isinstance(value, list) and value:
        return [float(v) for v in value]
    return None


def row_to_passage(row: dict[str, Any]) -> Passage:
    """Normalise a chunk row (RPC or table query) to a Passage."""
    document = row.get("documents") or {}
    metadata = dict(row.get("metadata") or {})
    return Passage(
        id=str(row.get("id")),
        document_id=str(row.get("document_id") or document.get("id") or ""),
        content=row.get("content") or "",
        user_id=str(document.get("user_id") or row.get("user_id") or ""),
        chunk_index=int(row.get("chunk_index") or 0),
        category_id=document.get("category_id") or row.get("category_id"),
        document_title=document.get("title") or row.get("title") or "",
        created_at=row.get("created_at"),
        embedding=_parse_embedding(row.get("embedding")),
        metadata=metadata,
    )


class SupabasePassageStore:
    """Passage store over the Supabase REST API (async client)."""

    def __init__(self, url: str | None = None, key: str | None = None, client: AsyncClient | None = None):
        """Initialize store settings.

        Args:
            url: Supabase project URL. Falls back to SUPABASE_URL env var.
            key: Supabase service key. Falls back to SUPABASE_KEY env var.
            client: Pre-built async client (tests). Created lazily otherwise.
        """
        self.url = url or os.getenv("SUPABASE_URL")
        self.key = key or os.getenv("SUPABASE_KEY")

        if client is None and (not self.url or not self.key):
            raise ValueError("Supabase URL and KEY required")

        self.client: AsyncClient | None = client
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> AsyncClient:
        """Lazy load async client."""
        async with self._client_lock:
            if self.client is None:
                self.client = await create_async_client(self.url, self.key)
        return self.client

    async def _reset_client(self) -> None:
        """Drop the client after a dead-connection error so the next call reconnects."""
        async with self._client_lock:
            logger.warning("Resetting Supabase client (stale connection)")
            self.client = None

    async def _handle_transport_error(self, channel: str, exc: Exception) -> ChannelFailure:
        if isinstance(exc, OSError) and ("closed" in str(exc).lower() or "transport" in str(exc).lower()):
            await self._reset_client()
        return ChannelFailure(channel, str(exc))

    async def match_passages(
        self,
        query_embedding: list[float],
        user_id: str,
        match_threshold: float,
        match_count: int,
        category_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Cosine-similarity search over the user's chunks.

        Returns raw RPC rows (``id, content, chunk_index, similarity, documents``).
        """
        try:
            client = await self._get_client()
            response = await client.rpc(
                VECTOR_SEARCH_RPC,
                {
                    "query_embedding": query_embedding,
                    "target_user_id": user_id,
                    "match_threshold": match_threshold,
                    "match_count": match_count,
                    "category_filter": category_id,
                },
            ).execute()
            return response.data or []
        except (PostgrestAPIError, OSError, httpx.HTTPError) as e:
            logger.error("Vector search error: %s", e)
            raise await self._handle_transport_error("vector", e) from e

    async def find_passages_containing(
        self,
        term: str,
        user_id: str,
        limit: int,
        category_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Case-insensitive substring match of a single term.

        Returns raw table rows with the owning document embedded.
        """
        try:
            client = await self._get_client()
            query = (
                client.table(CHUNKS_TABLE)
                .select(_LEXICAL_COLUMNS)
                .eq("documents.user_id", user_id)
                .ilike("content", f"%{escape_like(term)}%")
            )
            if category_id:
                query = query.eq("documents.category_id", category_id)
            response = await query.limit(limit).execute()
            return response.data or []
        except (PostgrestAPIError, OSError, httpx.HTTPError) as e:
            logger.warning("Keyword query failed for '%s': %s", term, e)
            raise await self._handle_transport_error("lexical", e) from e
