# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Passage search API

POST /search returns the ranked passages for a question together with the
grounding context and source titles for the answer generator.
"""

from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from src.config.logging_config import setup_logger
from src.config.settings import config, validate_env_for_app
from src.services.protocols import RetrievalService
from src.services.retrieval.errors import EmbeddingDimensionError, MalformedInput, RetrievalUnavailable
from src.services.retrieval.models import build_context, collect_sources
from src.services.retrieval.search import HybridRetrieval

logger = setup_logger(__name__)
app = FastAPI(title="Hybrid Passage Retrieval API")

NO_CONTENT_MESSAGE = "No relevant content found in your documents"

_retrieval: Optional[HybridRetrieval] = None


def get_retrieval() -> RetrievalService:
    """Process-wide pipeline, built on first request."""
    global _retrieval
    if _retrieval is None:
        _retrieval = HybridRetrieval()
    return _retrieval


class SearchRequest(BaseModel):
    """Request model for passage search"""

    query: str
    user_id: str
    category_id: Optional[str] = None
    limit: int = Field(default=config.DEFAULT_RESULT_LIMIT, ge=1, le=50)


class PassageOut(BaseModel):
    id: str
    document_id: str
    title: str
    content: str
    score: float


class SearchResponse(BaseModel):
    """Response model for passage search"""

    passages: list[PassageOut]
    context: str
    sources: list[str]
    message: Optional[str] = None


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/search", response_model=SearchResponse)
async def search(request: SearchRequest, retrieval: RetrievalService = Depends(get_retrieval)):
    """
    Retrieve passages grounding an answer to the question.

    - 400: malformed request (missing user, empty or oversize query)
    - 200 with no passages and a message: nothing relevant found
    - 503: both search channels unavailable (retry later)
    """
    try:
        passages = await retrieval.search(
            request.query,
            request.user_id,
            limit=request.limit,
            category_id=request.category_id,
        )
    except MalformedInput as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except RetrievalUnavailable as e:
        logger.error("Search unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Search is temporarily unavailable, please retry") from e
    except EmbeddingDimensionError as e:
        logger.critical("Embedding configuration error: %s", e)
        raise HTTPException(status_code=500, detail="Search is misconfigured") from e

    if not passages:
        logger.info("Search for user %s found no relevant content", request.user_id)
        return SearchResponse(passages=[], context="", sources=[], message=NO_CONTENT_MESSAGE)

    logger.info("Search for user %s → %s passage(s)", request.user_id, len(passages))
    return SearchResponse(
        passages=[PassageOut(**p.to_source()) for p in passages],
        context=build_context(passages),
        sources=collect_sources(passages),
    )


if __name__ == "__main__":
    validate_env_for_app()
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
