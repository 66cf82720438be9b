# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Retrieval error taxonomy.

Channel-level failures are recovered inside the orchestrator; only
MalformedInput, EmbeddingDimensionError and RetrievalUnavailable reach callers.
An empty result list is not an error.
"""


class RetrievalError(Exception):
    """Base class for retrieval pipeline errors."""


class MalformedInput(RetrievalError, ValueError):
    """Request rejected before any I/O (missing owner id, empty query, ...)."""


class EmbeddingFailure(RetrievalError):
    """The query vector could not be produced; the vector channel is skipped."""


class EmbeddingDimensionError(RetrievalError):
    """Embedding length differs from the configured dimension (deployment misconfiguration)."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class ChannelFailure(RetrievalError):
    """A search channel's store call failed or timed out."""

    def __init__(self, channel: str, message: str = ""):
        super().__init__(f"{channel} channel failed: {message}" if message else f"{channel} channel failed")
        self.channel = channel


class RetrievalUnavailable(RetrievalError):
    """Every source of relevance failed; callers should surface a retryable error."""
