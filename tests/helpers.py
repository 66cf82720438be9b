"""
Shared test helpers. Used across unit tests to avoid duplication.
"""

from src.services.retrieval.models import Passage, ScoredPassage


def make_passage(passage_id: str, content: str = "", **overrides: object) -> Passage:
    """Create a minimal Passage with sensible defaults for tests."""
    defaults: dict[str, object] = {
        "id": passage_id,
        "document_id": f"doc-{passage_id}",
        "content": content,
        "user_id": "user-1",
        "document_title": f"Title {passage_id}",
    }
    defaults.update(overrides)
    return Passage(**defaults)


def make_scored(
    passage_id: str,
    content: str = "",
    vector_score: float = 0.0,
    keyword_score: int = 0,
    hybrid_score: float = 0.0,
    embedding: list[float] | None = None,
    **passage_overrides: object,
) -> ScoredPassage:
    """Create a ScoredPassage around a minimal Passage."""
    passage = make_passage(passage_id, content, embedding=embedding, **passage_overrides)
    return ScoredPassage(
        passage=passage,
        vector_score=vector_score,
        keyword_score=keyword_score,
        hybrid_score=hybrid_score,
    )


def make_chunk_row(
    chunk_id: str,
    content: str = "",
    similarity: float | None = None,
    user_id: str = "user-1",
    category_id: str | None = None,
    title: str = "Doc",
    created_at: str | None = None,
) -> dict:
    """Create a store row shaped like the Supabase RPC / table query output."""
    row = {
        "id": chunk_id,
        "content": content,
        "chunk_index": 0,
        "document_id": f"doc-{chunk_id}",
        "created_at": created_at,
        "documents": {
            "id": f"doc-{chunk_id}",
            "title": title,
            "user_id": user_id,
            "category_id": category_id,
        },
    }
    if similarity is not None:
        row["similarity"] = similarity
    return row
