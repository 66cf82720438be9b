# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Lexical search stage: term-match channel of the hybrid pipeline.

One substring query per term runs concurrently against the store; rows are
merged by passage id and scored locally by term frequency.
"""

import asyncio

from src.config.logging_config import setup_logger
from src.services.protocols import PassageStore
from src.services.retrieval.errors import ChannelFailure
from src.services.retrieval.models import ScoredPassage
from src.services.retrieval.store import row_to_passage

logger = setup_logger(__name__)


def count_occurrences(text: str, term: str) -> int:
    """Non-overlapping, case-insensitive occurrences of *term* in *text*."""
    if not term:
        return 0
    return text.lower().count(term.lower())


def match_ratio(text: str, terms: list[str]) -> float:
    """Fraction of *terms* whose lowercase form is a substring of *text* (0 with no terms)."""
    if not terms:
        return 0.0
    lowered = text.lower()
    matched = sum(1 for term in terms if term.lower() in lowered)
    return matched / len(terms)


def normalize_terms(terms: list[str]) -> list[str]:
    """Strip blanks and case-insensitive duplicates, preserving order."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for term in terms:
        term = (term or "").strip()
        if not term or term.lower() in seen:
            continue
        seen.add(term.lower())
        cleaned.append(term)
    return cleaned


class LexicalSearchStage:
    """Passages containing any of the extracted terms, ranked by term frequency."""

    def __init__(self, store: PassageStore):
        self.store = store

    async def fetch(
        self,
        terms: list[str],
        user_id: str,
        limit: int,
        category_id: str | None = None,
        query: str = "",
    ) -> list[ScoredPassage]:
        """
        Query the store and score the matches.

        Args:
            terms: Extracted terms; when empty the raw *query* is the only term
            user_id: Owner whose passages are searched
            limit: Max passages returned
            category_id: Optional category restriction
            query: Raw query text used when *terms* is empty

        Returns:
            Passages with ``keyword_score`` and ``keyword_match_ratio`` set, ordered by
            match ratio, then keyword score, then recency (all descending).

        Raises:
            ChannelFailure: every per-term store query failed
        """
        search_terms = normalize_terms(terms) or normalize_terms([query])
        if not search_terms:
            return []

        per_term_limit = limit * 2
        responses = await asyncio.gather(
            *(self.store.find_passages_containing(term, user_id, per_term_limit, category_id) for term in search_terms),
            return_exceptions=True,
        )

        rows_by_id: dict[str, dict] = {}
        failures = 0
        for term, response in zip(search_terms, responses, strict=True):
            if isinstance(response, BaseException):
                if not isinstance(response, Exception):
                    raise response
                failures += 1
                logger.warning("Keyword '%s' search failed: %s", term, response)
                continue
            for row in response:
                rows_by_id.setdefault(str(row.get("id")), row)

        if failures == len(search_terms):
            raise ChannelFailure("lexical", f"all {failures} term queries failed")

        results: list[ScoredPassage] = []
        for row in rows_by_id.values():
            passage = row_to_passage(row)
            if category_id and passage.category_id != category_id:
                logger.warning("Lexical row %s outside category %s dropped", passage.id, category_id)
                continue
            score = sum(count_occurrences(passage.content, term) for term in search_terms)
            if score == 0:
                continue
            results.append(
                ScoredPassage(
                    passage=passage,
                    keyword_score=score,
                    keyword_match_ratio=match_ratio(passage.content, search_terms),
                )
            )

        # Three stable passes: least significant key first.
        results.sort(key=lambda r: r.passage.created_at or "", reverse=True)
        results.sort(key=lambda r: r.keyword_score, reverse=True)
        results.sort(key=lambda r: r.keyword_match_ratio, reverse=True)
        results = results[:limit]

        logger.info("Keyword search → %s passage(s) for %s term(s)", len(results), len(search_terms))
        return results

    async def search(
        self,
        terms: list[str],
        user_id: str,
        limit: int,
        category_id: str | None = None,
        query: str = "",
    ) -> list[ScoredPassage]:
        """Same as :meth:`fetch` but a data-access failure yields an empty list."""
        try:
            return await self.fetch(terms, user_id, limit, category_id=category_id, query=query)
        except ChannelFailure as e:
            logger.error("Keyword search error: %s", e)
            return []
