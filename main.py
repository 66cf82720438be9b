#!/usr/bin/env python3
# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.
"""
Hybrid Passage Retrieval - Main Entry Point

Usage:
    python main.py "question" --user-id U [--category-id C] [--limit N]
    python main.py --serve      # Run the search API (uvicorn)

Exit codes: 0 passages found, 1 nothing relevant, 2 invalid request,
3 search unavailable, 4 embedding misconfiguration.
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Ensure project root is in path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

# Passages go to stdout, logs to stderr (unless LOG_STREAM is set).
os.environ.setdefault("LOG_STREAM", "stderr")

from src.config.logging_config import setup_logger
from src.config.settings import config, validate_env_for_app
from src.services.retrieval.errors import EmbeddingDimensionError, MalformedInput, RetrievalUnavailable
from src.services.retrieval.models import collect_sources
from src.services.retrieval.search import HybridRetrieval

logger = setup_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hybrid passage retrieval")
    parser.add_argument("query", nargs="?", help="Question to retrieve passages for")
    parser.add_argument("--user-id", help="Owner whose documents are searched")
    parser.add_argument("--category-id", default=None, help="Restrict to one category")
    parser.add_argument("--limit", type=int, default=config.DEFAULT_RESULT_LIMIT, help="Max passages")
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API instead")
    return parser


async def run_query(query: str, user_id: str, category_id: str | None, limit: int) -> int:
    """Run one retrieval and print the ranked passages. Returns the exit code."""
    retrieval = HybridRetrieval()
    try:
        passages = await retrieval.search(query, user_id, limit=limit, category_id=category_id)
    except MalformedInput as e:
        print(f"Invalid request: {e}", file=sys.stderr)
        return 2
    except RetrievalUnavailable as e:
        print(f"Search unavailable, try again later: {e}", file=sys.stderr)
        return 3
    except EmbeddingDimensionError as e:
        print(f"Search is misconfigured: {e}", file=sys.stderr)
        return 4

    if not passages:
        print("No relevant content found.")
        return 1

    for rank, passage in enumerate(passages, start=1):
        print(f"[{rank}] {passage.title} (score={passage.hybrid_score:.4f})")
        print(f"    {passage.content[:200]}")
    print("Sources: " + ", ".join(collect_sources(passages)))
    return 0


def run_server():
    import uvicorn

    from src.api.search import app

    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)


def main(argv: list[str] | None = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    validate_env_for_app()

    if args.serve:
        run_server()
        return 0
    if not args.query or not args.user_id:
        logger.error("A query and --user-id are required (or pass --serve)")
        return 2
    return asyncio.run(run_query(args.query, args.user_id, args.category_id, args.limit))


if __name__ == "__main__":
    sys.exit(main())
