"""
Integration tests for the full retrieval pipeline.

Drives HybridRetrieval end-to-end through the real store adapter, stages,
fusion and reranker. Supabase and the embedding API are replaced by in-memory
fakes; no real API keys or network connections required.

Run with:
    python -m pytest tests/integration/test_retrieval_pipeline.py -v
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from openai import OpenAIError

from src.services.common.embedder import QueryEmbedder
from src.services.retrieval.errors import RetrievalUnavailable
from src.services.retrieval.keywords import ChainedTermExtractor, LocalTermExtractor
from src.services.retrieval.models import RetrievalWeights, build_context, collect_sources
from src.services.retrieval.search import HybridRetrieval
from src.services.retrieval.store import SupabasePassageStore
from tests.helpers import make_chunk_row


def _run(coro):
    """Run a coroutine synchronously (pytest-asyncio not required)."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# In-memory Supabase stand-in
# ---------------------------------------------------------------------------
class _Response:
    def __init__(self, data=None, error: Exception | None = None):
        self.data = data
        self._error = error

    async def execute(self):
        if self._error is not None:
            raise self._error
        return self


class _Query:
    """Chainable table query honoring the owner filter and the ILIKE pattern."""

    def __init__(self, owner: "_FakeSupabase"):
        self.owner = owner
        self.filters: dict[str, str] = {}
        self.pattern = ""
        self.max_rows = None

    def select(self, columns):
        return self

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def ilike(self, column, pattern):
        self.pattern = pattern
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    async def execute(self):
        if self.owner.error is not None:
            raise self.owner.error
        term = self.pattern[1:-1].replace("\\%", "%").replace("\\_", "_").replace("\\\\", "\\").lower()
        rows = [
            row
            for row in self.owner.chunk_rows
            if term in row["content"].lower() and row["documents"]["user_id"] == self.filters.get("documents.user_id")
        ]
        return _Response(rows[: self.max_rows])


class _FakeSupabase:
    def __init__(self, vector_rows=None, chunk_rows=None, error: Exception | None = None):
        self.vector_rows = vector_rows or []
        self.chunk_rows = chunk_rows or []
        self.error = error
        self.rpc_params: list[dict] = []

    def rpc(self, name, params):
        self.rpc_params.append(params)
        return _Response(self.vector_rows[: params["match_count"]], error=self.error)

    def table(self, name):
        return _Query(self)


def _openai_client(vector=None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.embeddings.create.side_effect = error
    else:
        client.embeddings.create.return_value = MagicMock(data=[MagicMock(embedding=vector or [1.0, 0.0, 0.0])])
    return client


def _pipeline(fake: _FakeSupabase, openai_client=None) -> HybridRetrieval:
    return HybridRetrieval(
        store=SupabasePassageStore(client=fake),
        embedder=QueryEmbedder(client=openai_client or _openai_client(), dimensions=3, instruction=""),
        term_extractor=ChainedTermExtractor([LocalTermExtractor()]),
        weights=RetrievalWeights(),
        stage_timeout=5,
    )


_POLICY_ROWS = [
    make_chunk_row(
        "c1",
        "Refund policy: items can be returned within 30 days for a full refund.",
        similarity=0.82,
        title="Store Policy",
    ),
    make_chunk_row("c2", "Damaged goods are replaced free of charge.", similarity=0.64, title="Store Policy"),
    make_chunk_row("c3", "Shipping takes five business days.", similarity=0.35, title="Shipping"),
]
_OTHER_USER_ROW = make_chunk_row("c4", "Refund policy for partners.", user_id="user-2", title="Partner Terms")


class TestRetrievalPipeline:
    def test_hybrid_search_end_to_end(self):
        fake = _FakeSupabase(vector_rows=_POLICY_ROWS, chunk_rows=_POLICY_ROWS + [_OTHER_USER_ROW])
        results = _run(_pipeline(fake).search("refund policy for damaged goods", "user-1", limit=5))

        assert [r.id for r in results] == ["c1", "c2", "c3"]
        assert results[0].in_both_channels
        assert all(0.0 <= r.hybrid_score <= 1.0 for r in results)
        assert collect_sources(results) == ["Store Policy", "Shipping"]
        assert "Document 《Store Policy》 content:\nRefund policy" in build_context(results)
        assert fake.rpc_params[0]["target_user_id"] == "user-1"
        assert fake.rpc_params[0]["match_count"] == 10

    def test_category_filter_never_leaks(self):
        rows = [
            make_chunk_row("a", "refund rules", similarity=0.9, category_id="cat-A"),
            make_chunk_row("b", "refund rules elsewhere", similarity=0.95, category_id="cat-B"),
        ]
        fake = _FakeSupabase(vector_rows=rows, chunk_rows=rows)
        results = _run(_pipeline(fake).search("refund rules", "user-1", limit=5, category_id="cat-A"))

        assert [r.id for r in results] == ["a"]
        assert fake.rpc_params[0]["category_filter"] == "cat-A"

    def test_near_duplicates_collapse(self):
        shared = " ".join(f"clause{i}" for i in range(40))
        rows = [
            make_chunk_row("x", "warranty terms for electronics", similarity=0.5),
            make_chunk_row("y", "loyalty points expire yearly", similarity=0.45),
        ]
        rows += [
            make_chunk_row(f"dup{i}", f"{shared} extra{i}a extra{i}b extra{i}c.", similarity=0.9 - i * 0.01)
            for i in range(10)
        ]
        fake = _FakeSupabase(vector_rows=rows, chunk_rows=rows)
        results = _run(_pipeline(fake).search("quarterly summary", "user-1", limit=5))

        assert len(results) <= 5
        assert sum(1 for r in results if r.id.startswith("dup")) <= 2
        assert "x" in {r.id for r in results}

    def test_embedding_failure_degrades_to_lexical(self):
        fake = _FakeSupabase(vector_rows=_POLICY_ROWS, chunk_rows=_POLICY_ROWS)
        pipeline = _pipeline(fake, openai_client=_openai_client(error=OpenAIError("invalid api key")))
        results = _run(pipeline.search("refund policy for damaged goods", "user-1", limit=5))

        assert {r.id for r in results} == {"c1", "c2"}
        assert fake.rpc_params == []

    def test_nothing_relevant_returns_empty_list(self):
        fake = _FakeSupabase()
        assert _run(_pipeline(fake).search("refund policy", "user-1", limit=5)) == []

    def test_unreachable_store_raises_unavailable(self):
        fake = _FakeSupabase(error=OSError("connection refused"))
        with pytest.raises(RetrievalUnavailable):
            _run(_pipeline(fake).search("refund policy", "user-1", limit=5))
