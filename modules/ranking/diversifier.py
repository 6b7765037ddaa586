"""
modules/ranking/diversifier.py

Greedy modality diversification for ranked result lists.

Problem this solves:
Text embeddings are dense and tend to dominate nearest-neighbour search.
Without diversification a query over [TEXT, CODE] can return a page of
near-identical text hits before the first code hit appears.

Strategy:
1. Start from the score-sorted list
2. Repeatedly pick the remaining result with the highest
   score - (already selected of its modality) * diversity_factor
3. Optionally cap near-duplicates sharing a content key

Scores are never rewritten; only the order (and, with a cap, membership) changes.
"""

from collections import defaultdict
from typing import Dict, List, Optional

from loguru import logger

from config.settings import (
    CONTENT_KEY_TAG_CHARS,
    CONTENT_KEY_TITLE_CHARS,
    DIVERSITY_MIN_SCORE,
)
from models.schemas import ContentType, SearchResult


def content_key(result: SearchResult) -> str:
    """Near-duplicate key: type, truncated title and tags, source. Lower-cased."""
    meta = result.content.metadata
    title = (meta.title or "")[:CONTENT_KEY_TITLE_CHARS]
    tags = " ".join(meta.tags)[:CONTENT_KEY_TAG_CHARS]
    source = meta.source or ""
    return f"{result.type.value}:{title}:{tags}:{source}".lower()


def diversify(
    results: List[SearchResult],
    diversity_factor: float,
    max_similar_results: Optional[int] = None,
) -> List[SearchResult]:
    """
    Reorder results so modalities interleave.

    Args:
        results:             Results, usually sorted by relevance_score
        diversity_factor:    Penalty per already-selected result of the same modality
        max_similar_results: If set, keep at most this many results per content key
                             and drop results whose adjusted score is <= DIVERSITY_MIN_SCORE

    Returns:
        New list. Without a cap it is a permutation of the input.
    """
    if diversity_factor <= 0 or len(results) < 2:
        return list(results)

    remaining = list(results)
    selected: List[SearchResult] = []
    type_counts: Dict[ContentType, int] = defaultdict(int)
    key_counts: Dict[str, int] = defaultdict(int)
    dropped = 0

    while remaining:
        best_index = 0
        best_adjusted = float("-inf")
        for i, candidate in enumerate(remaining):
            adjusted = candidate.relevance_score - type_counts[candidate.type] * diversity_factor
            # strict > keeps the earliest candidate on ties
            if adjusted > best_adjusted:
                best_adjusted = adjusted
                best_index = i

        chosen = remaining.pop(best_index)

        if max_similar_results is not None:
            key = content_key(chosen)
            if key_counts[key] >= max_similar_results or best_adjusted <= DIVERSITY_MIN_SCORE:
                dropped += 1
                continue
            key_counts[key] += 1

        selected.append(chosen)
        type_counts[chosen.type] += 1

    if dropped:
        logger.debug(f"Diversification dropped {dropped} near-duplicate/low-score results")

    return selected
