# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Embedding Service for search queries
Generates query vectors through an OpenAI-compatible embeddings endpoint
(DashScope text-embedding-v4 by default)
"""

import os

from openai import OpenAI, OpenAIError

from src.config.logging_config import setup_logger
from src.config.settings import config
from src.services.retrieval.errors import EmbeddingDimensionError, EmbeddingFailure
from src.utils.retry import with_retry

logger = setup_logger(__name__)


class QueryEmbedder:
    """
    Generate query embeddings

    Features:
    - Optional task instruction prepended to the query text
    - Dimension check against EMBEDDING_DIMENSIONS (mismatch is a configuration error)
    - Retries on transient API errors; anything else becomes EmbeddingFailure
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
        instruction: str | None = None,
        client: OpenAI | None = None,
    ):
        """
        Initialize embedder

        Args:
            api_key: Embedding API key (defaults to EMBEDDING_API_KEY env var)
            base_url: OpenAI-compatible base URL (defaults to EMBEDDING_BASE_URL)
            model: Embedding model to use
            dimensions: Expected vector length
            instruction: Task instruction for query embeddings ("" disables it)
            client: Pre-built OpenAI client (tests)
        """
        self.model = model or config.EMBEDDING_MODEL
        self.dimensions = dimensions or config.EMBEDDING_DIMENSIONS
        self.instruction = config.EMBEDDING_QUERY_INSTRUCTION if instruction is None else instruction

        if client is None:
            api_key = api_key or os.getenv("EMBEDDING_API_KEY")
            if not api_key:
                raise ValueError("Embedding API key required. Set EMBEDDING_API_KEY env var or pass api_key parameter.")
            client = OpenAI(api_key=api_key, base_url=base_url or config.EMBEDDING_BASE_URL)
        self.client = client

    @with_retry(retries=2)
    def _create_embedding(self, text: str) -> list[float]:
        response = self.client.embeddings.create(
            model=self.model,
            input=text,
            dimensions=self.dimensions,
            encoding_format="float",
        )
        if not response.data:
            return []
        return list(response.data[0].embedding)

    def embed_query(self, query_text: str) -> list[float]:
        """
        Generate embedding for a single query

        Args:
            query_text: Query string

        Returns:
            Embedding vector (EMBEDDING_DIMENSIONS floats)

        Raises:
            EmbeddingFailure: the service failed or returned no vector
            EmbeddingDimensionError: the vector length does not match the deployment
        """
        text = f"{self.instruction}\n{query_text}" if self.instruction else query_text
        try:
            embedding = self._create_embedding(text)
        except OpenAIError as e:
            logger.error("Query embedding failed (%s): %s", type(e).__name__, e)
            raise EmbeddingFailure(str(e)) from e

        if not embedding:
            raise EmbeddingFailure("Embedding service returned an empty vector")
        if len(embedding) != self.dimensions:
            raise EmbeddingDimensionError(self.dimensions, len(embedding))

        logger.debug("Query embedding generated (model=%s, dim=%s)", self.model, len(embedding))
        return embedding
