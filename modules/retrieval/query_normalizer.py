"""
modules/retrieval/query_normalizer.py

Turns a caller-supplied SearchQuery into a fully specified one.
Normalization never raises: bad modality entries are dropped, missing
limit/threshold are filled from configured defaults.
"""

from typing import Any, Iterable, List, Optional

from loguru import logger

from config.settings import DEFAULT_LIMIT, DEFAULT_THRESHOLD
from models.schemas import ContentType, SearchFilters, SearchQuery


def _coerce_modality(value: Any) -> Optional[ContentType]:
    if isinstance(value, ContentType):
        return value
    if isinstance(value, str):
        try:
            return ContentType(value.lower())
        except ValueError:
            return None
    return None


def normalize_modalities(modalities: Optional[Iterable[Any]]) -> List[ContentType]:
    """
    Keep recognised modalities in their given order, without duplicates.
    Falls back to [TEXT] when nothing usable remains.
    """
    seen: List[ContentType] = []
    for value in modalities or []:
        modality = _coerce_modality(value)
        if modality is None:
            logger.debug(f"Dropping unknown modality: {value!r}")
            continue
        if modality not in seen:
            seen.append(modality)
    return seen or [ContentType.TEXT]


def normalize(
    query: SearchQuery,
    default_limit: int = DEFAULT_LIMIT,
    default_threshold: float = DEFAULT_THRESHOLD,
) -> SearchQuery:
    """Return a new SearchQuery with defaults applied. The input is not modified."""
    return SearchQuery(
        query=(query.query or "").strip(),
        modalities=normalize_modalities(query.modalities),
        limit=query.limit if query.limit is not None else default_limit,
        threshold=query.threshold if query.threshold is not None else default_threshold,
        filters=query.filters if query.filters is not None else SearchFilters(),
    )


def is_valid_query(query: Any) -> bool:
    if not isinstance(query, SearchQuery):
        return False
    if not isinstance(query.query, str) or not query.query.strip():
        return False
    if not query.modalities:
        return False
    return all(isinstance(m, ContentType) for m in query.modalities)


def create_search_query(
    text: str,
    modalities: Optional[List[ContentType]] = None,
    limit: int = DEFAULT_LIMIT,
    threshold: float = DEFAULT_THRESHOLD,
    filters: Optional[SearchFilters] = None,
) -> SearchQuery:
    return SearchQuery(
        query=text,
        modalities=list(modalities) if modalities else [ContentType.TEXT],
        limit=limit,
        threshold=threshold,
        filters=filters,
    )
