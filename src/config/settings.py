# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Configuration settings for the hybrid passage retrieval service
"""

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from src.config.logging_config import setup_logger

logger = setup_logger(__name__)

# Use find_dotenv() to locate .env regardless of the current working directory.
# Falls back to an explicit path relative to this file (project root) if not found.
_dotenv_path = find_dotenv(usecwd=True) or str(Path(__file__).resolve().parent.parent.parent / ".env")
load_dotenv(_dotenv_path)


def _env_bool(name: str, default: str) -> bool:
    return (os.getenv(name, default)).strip().lower() in ("true", "1", "yes")


# ============================================
# Environment-based Configuration
# ============================================


class Config:
    """
    Centralized configuration loaded from environment variables.
    Edit .env file to change these values.
    """

    # Embedding Settings (OpenAI-compatible endpoint, DashScope by default)
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-v4")
    EMBEDDING_DIMENSIONS: int = int(os.getenv("EMBEDDING_DIMENSIONS", "1024"))
    EMBEDDING_BASE_URL: str = os.getenv("EMBEDDING_BASE_URL", "https://dashscope.aliyuncs.com/compatible-mode/v1")
    EMBEDDING_QUERY_INSTRUCTION: str = os.getenv(
        "EMBEDDING_QUERY_INSTRUCTION",
        "Given a web search query, retrieve relevant passages that answer the query",
    )

    # Retrieval Settings
    MATCH_THRESHOLD: float = float(os.getenv("MATCH_THRESHOLD", "0.3"))
    DEFAULT_RESULT_LIMIT: int = int(os.getenv("DEFAULT_RESULT_LIMIT", "5"))
    # Each channel fetches limit * CANDIDATE_MULTIPLIER passages so the reranker has room to diversify.
    CANDIDATE_MULTIPLIER: int = int(os.getenv("CANDIDATE_MULTIPLIER", "2"))
    # Per-channel timeout (seconds). A channel that times out is treated as failed.
    SEARCH_STAGE_TIMEOUT: float = float(os.getenv("SEARCH_STAGE_TIMEOUT", "15"))
    # Query length limit (chars) - reject oversize queries to avoid abuse and cost
    MAX_QUERY_LENGTH: int = int(os.getenv("MAX_QUERY_LENGTH", "2000"))

    # Keyword extraction
    KEYWORD_MAX_TERMS: int = int(os.getenv("KEYWORD_MAX_TERMS", "8"))
    KEYWORD_MODEL: str = os.getenv("KEYWORD_MODEL", "openai/gpt-4o-mini")
    OPENROUTER_BASE_URL: str = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    # Set to false to skip the LLM provider (local heuristic / Baidu only).
    KEYWORD_LLM_ENABLED: bool = _env_bool("KEYWORD_LLM_ENABLED", "true")
    # Set to false to return no terms when every remote provider fails.
    KEYWORD_LOCAL_FALLBACK: bool = _env_bool("KEYWORD_LOCAL_FALLBACK", "true")

    # Fusion weights. Empirical values; not validated against a labelled relevance set.
    VECTOR_WEIGHT: float = float(os.getenv("VECTOR_WEIGHT", "0.6"))
    KEYWORD_WEIGHT: float = float(os.getenv("KEYWORD_WEIGHT", "0.4"))
    BOOSTED_VECTOR_WEIGHT: float = float(os.getenv("BOOSTED_VECTOR_WEIGHT", "0.5"))
    BOOSTED_KEYWORD_WEIGHT: float = float(os.getenv("BOOSTED_KEYWORD_WEIGHT", "0.5"))
    WEIGHT_SHIFT_MATCH_RATIO: float = float(os.getenv("WEIGHT_SHIFT_MATCH_RATIO", "0.8"))
    DUAL_CHANNEL_BONUS: float = float(os.getenv("DUAL_CHANNEL_BONUS", "0.1"))
    MATCH_RATIO_BONUS_THRESHOLD: float = float(os.getenv("MATCH_RATIO_BONUS_THRESHOLD", "0.5"))
    MATCH_RATIO_BONUS_SCALE: float = float(os.getenv("MATCH_RATIO_BONUS_SCALE", "0.1"))
    KEYWORD_SCORE_CAP: float = float(os.getenv("KEYWORD_SCORE_CAP", "5"))
    SCORE_TIE_EPSILON: float = float(os.getenv("SCORE_TIE_EPSILON", "0.01"))

    # Diversity rerank (MMR)
    DIVERSITY_RERANK_ENABLED: bool = _env_bool("DIVERSITY_RERANK_ENABLED", "true")
    MMR_LAMBDA: float = float(os.getenv("MMR_LAMBDA", "0.7"))
    MMR_VECTOR_DAMPING: float = float(os.getenv("MMR_VECTOR_DAMPING", "0.8"))
    DEDUP_THRESHOLD: float = float(os.getenv("DEDUP_THRESHOLD", "0.8"))

    # HTTP surface
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))


# Singleton instance
config = Config()


_UNIT_INTERVAL_FIELDS = (
    "MATCH_THRESHOLD",
    "VECTOR_WEIGHT",
    "KEYWORD_WEIGHT",
    "BOOSTED_VECTOR_WEIGHT",
    "BOOSTED_KEYWORD_WEIGHT",
    "WEIGHT_SHIFT_MATCH_RATIO",
    "DUAL_CHANNEL_BONUS",
    "MATCH_RATIO_BONUS_THRESHOLD",
    "MATCH_RATIO_BONUS_SCALE",
    "MMR_LAMBDA",
    "MMR_VECTOR_DAMPING",
    "DEDUP_THRESHOLD",
)


def validate_config_dependencies() -> list[str]:
    """
    Cross-field validation of the loaded config.

    Returns a list of human-readable errors (empty when the config is usable).
    """
    errors: list[str] = []

    for name in _UNIT_INTERVAL_FIELDS:
        value = getattr(config, name)
        if not 0.0 <= value <= 1.0:
            errors.append(f"{name}={value} must be within [0, 1]")

    if config.EMBEDDING_DIMENSIONS <= 0:
        errors.append("EMBEDDING_DIMENSIONS must be positive")
    if config.KEYWORD_SCORE_CAP <= 0:
        errors.append("KEYWORD_SCORE_CAP must be positive")
    if config.CANDIDATE_MULTIPLIER < 1:
        errors.append("CANDIDATE_MULTIPLIER must be at least 1")
    if config.SEARCH_STAGE_TIMEOUT <= 0:
        errors.append("SEARCH_STAGE_TIMEOUT must be positive")
    if config.KEYWORD_MAX_TERMS < 1:
        errors.append("KEYWORD_MAX_TERMS must be at least 1")

    return errors


def validate_env_for_app() -> None:
    """
    Validate required env vars for the search service. Call at startup.
    Raises SystemExit with clear message if any required var is missing.
    """
    required = {
        "SUPABASE_URL": os.getenv("SUPABASE_URL", "").strip(),
        "SUPABASE_KEY": os.getenv("SUPABASE_KEY", "").strip(),
        "EMBEDDING_API_KEY": os.getenv("EMBEDDING_API_KEY", "").strip(),
    }
    missing = [k for k, v in required.items() if not v]
    if missing:
        msg = f"Missing required env vars: {', '.join(missing)}. Set them in .env or environment."
        raise SystemExit(msg)

    errors = validate_config_dependencies()
    if errors:
        raise SystemExit("Invalid configuration: " + "; ".join(errors))

    if config.KEYWORD_LLM_ENABLED and not os.getenv("OPENROUTER_API_KEY", "").strip():
        logger.warning("KEYWORD_LLM_ENABLED=true but OPENROUTER_API_KEY is missing; LLM keyword extraction is skipped")
