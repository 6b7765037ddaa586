"""
modules/retrieval/retrieval_engine.py

Multi-modal retrieval engine for the search core.

Pipeline:
  1. Query normalization (modalities, limit, threshold defaults)
  2. Result-cache lookup (short-circuits everything below on a hit)
  3. Semantic query expansion from a fixed synonym table
  4. Query encoding via the embedding collaborator
  5. Per-modality nearest-neighbour retrieval + filters
  6. Cross-modal enrichment (CrossModalMatcher)
  7. Min-score filter on raw similarity, then score boosts
  8. Sort, optional modality diversification, truncate, cache

Imports from:
  - core: collaborator contracts, TTLCache, exceptions
  - config: retrieval constants and SearchEngineConfig
  - modules.ranking.diversifier: greedy modality diversification
"""

import copy
import hashlib
import json
import time
import uuid
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from config.search_config import SearchEngineConfig
from config.settings import (
    CANDIDATE_MULTIPLIER,
    CROSS_MODAL_BOOST_CAP,
    CROSS_MODAL_BOOST_PER_MATCH,
    EXPANSIONS_PER_TERM,
    MAX_EXPANSIONS,
    METADATA_BOOST_CAP,
    MODALITY_POSITION_BOOSTS,
    POPULAR_QUERY_COUNT,
    QUERY_TIME_WINDOW,
    RESULT_CACHE_SWEEP_SIZE,
    SYNONYM_TABLE,
    TAG_BOOST_WEIGHT,
    TITLE_BOOST_WEIGHT,
)
from core.collaborators import EmbeddingGenerator, VectorStore, with_deadline
from core.exceptions import EmbeddingFailedError
from core.ttl_cache import TTLCache
from models.schemas import (
    Content,
    ContentMetadata,
    ContentType,
    Embedding,
    SearchAnalytics,
    SearchFilters,
    SearchQuery,
    SearchResult,
    SearchResultMetadata,
    as_naive_utc,
)
from modules.ranking.diversifier import diversify
from modules.retrieval.query_normalizer import normalize


# ── Data Structures ────────────────────────────────────────────────────────
@dataclass
class SearchOptions:
    """
    Per-call switches for RetrievalEngine.search().
    None for max_results / min_score means "use the query's limit / threshold".
    """
    enable_cross_modal:        bool            = True
    enable_semantic_expansion: bool            = True
    max_results:               Optional[int]   = None
    min_score:                 Optional[float] = None
    diversity_factor:          float           = 0.0
    max_similar_results:       Optional[int]   = None

    @classmethod
    def from_config(cls, config: SearchEngineConfig) -> "SearchOptions":
        return cls(
            enable_cross_modal=config.enable_cross_modal,
            enable_semantic_expansion=config.enable_semantic_expansion,
            max_results=config.max_results,
            min_score=None,
            diversity_factor=config.diversity_factor,
            max_similar_results=config.max_similar_results,
        )

    def cache_view(self) -> Dict[str, Any]:
        """Options that change the result set, and so belong in the cache key."""
        return {
            "enable_cross_modal":        self.enable_cross_modal,
            "enable_semantic_expansion": self.enable_semantic_expansion,
            "max_results":               self.max_results,
            "min_score":                 self.min_score,
            "diversity_factor":          self.diversity_factor,
            "max_similar_results":       self.max_similar_results,
        }


# ── Step 1: Cache Key ──────────────────────────────────────────────────────
def build_cache_key(query: SearchQuery, options: SearchOptions) -> str:
    """
    SHA-256 over canonical JSON of the query and result-shaping options.
    Modalities are sorted so [TEXT, CODE] and [CODE, TEXT] share an entry.
    """
    key_data = {
        "query":      query.query,
        "modalities": sorted(m.value for m in query.modalities),
        "limit":      query.limit,
        "threshold":  query.threshold,
        "filters":    query.filters.to_dict() if query.filters else None,
        "options":    options.cache_view(),
    }
    canonical = json.dumps(key_data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ── Step 2: Query Expansion ────────────────────────────────────────────────
def expand_query(text: str) -> str:
    """
    Append synonyms for known terms: at most EXPANSIONS_PER_TERM per word,
    MAX_EXPANSIONS in total. Returns the input unchanged when nothing matches.
    """
    expansions: List[str] = []
    for word in text.lower().split():
        synonyms = SYNONYM_TABLE.get(word)
        if not synonyms:
            continue
        expansions.extend(synonyms[:EXPANSIONS_PER_TERM])

    if not expansions:
        return text

    expansions = expansions[:MAX_EXPANSIONS]
    expanded = f"{text} {' '.join(expansions)}"
    logger.debug(f"Query expanded: '{text}' → '{expanded}'")
    return expanded


# ── Step 3: Filters ────────────────────────────────────────────────────────
def passes_filters(embedding: Embedding, filters: Optional[SearchFilters]) -> bool:
    """
    Apply the query filters to a stored embedding.
      content_type: allow list
      tags:         ANY filter tag is a case-insensitive substring of ANY item tag
      source:       exact match
      date_range:   inclusive, against embedding.created_at
      metadata:     exact match against metadata.extra
    """
    if filters is None:
        return True

    if filters.content_type and embedding.content_type not in filters.content_type:
        return False

    if filters.tags:
        item_tags = [t.lower() for t in embedding.metadata.tags]
        if not any(
            f.lower() in tag for f in filters.tags for tag in item_tags
        ):
            return False

    if filters.source is not None and embedding.metadata.source != filters.source:
        return False

    if filters.date_range is not None:
        created = as_naive_utc(embedding.created_at)
        start = as_naive_utc(filters.date_range.start)
        end = as_naive_utc(filters.date_range.end)
        if created < start or created > end:
            return False

    for key, expected in filters.metadata.items():
        if embedding.metadata.extra.get(key) != expected:
            return False

    return True


def reconstruct_content(embedding: Embedding) -> Content:
    """Rebuild a Content view from the metadata stored alongside an embedding."""
    meta = embedding.metadata
    return Content(
        id=embedding.content_id,
        type=embedding.content_type,
        data="",
        metadata=ContentMetadata(
            title=meta.title or "Untitled",
            description=meta.description or "",
            tags=list(meta.tags),
            source=meta.source or "unknown",
            timestamp=meta.timestamp,
            extra=dict(meta.extra),
        ),
    )


# ── Step 4: Score Boosts ───────────────────────────────────────────────────
def cross_modal_boost(result: SearchResult) -> float:
    return min(len(result.cross_modal_matches) * CROSS_MODAL_BOOST_PER_MATCH, CROSS_MODAL_BOOST_CAP)


def metadata_boost(result: SearchResult, query_text: str) -> float:
    """
    Title: share of title words overlapping a query word (either direction).
    Tags:  share of tags containing a query word.
    """
    query_words = query_text.lower().split()
    if not query_words:
        return 0.0

    boost = 0.0
    meta = result.content.metadata

    if meta.title:
        title_words = meta.title.lower().split()
        if title_words:
            title_matches = [
                w for w in title_words
                if any(q in w or w in q for q in query_words)
            ]
            boost += len(title_matches) / len(title_words) * TITLE_BOOST_WEIGHT

    if meta.tags:
        tag_matches = [
            tag for tag in meta.tags
            if any(q in tag.lower() for q in query_words)
        ]
        boost += len(tag_matches) / len(meta.tags) * TAG_BOOST_WEIGHT

    return min(boost, METADATA_BOOST_CAP)


def modality_position_boost(content_type: ContentType, modalities: List[ContentType]) -> float:
    """First requested modality gets the largest boost, then the second."""
    if content_type not in modalities:
        return 0.0
    index = modalities.index(content_type)
    if index < len(MODALITY_POSITION_BOOSTS):
        return MODALITY_POSITION_BOOSTS[index]
    return 0.0


def apply_boosts(results: List[SearchResult], query: SearchQuery) -> List[SearchResult]:
    """Add every boost once to each result's relevance_score, capped at 1.0."""
    for result in results:
        score = result.relevance_score
        if result.cross_modal_matches:
            score += cross_modal_boost(result)
        score += metadata_boost(result, query.query)
        score += modality_position_boost(result.type, query.modalities)
        result.relevance_score = min(score, 1.0)
    return results


# ── Step 5: Analytics ──────────────────────────────────────────────────────
def count_results_by_modality(results: List[SearchResult]) -> Dict[ContentType, int]:
    """Zero-filled count for every modality, in canonical order."""
    counts = {t: 0 for t in ContentType}
    for result in results:
        counts[result.type] += 1
    return counts


def average_score(results: List[SearchResult]) -> float:
    if not results:
        return 0.0
    return sum(r.relevance_score for r in results) / len(results)


def count_cross_modal_matches(results: List[SearchResult]) -> int:
    return sum(len(r.cross_modal_matches) for r in results)


def summarize(
    results: List[SearchResult],
    query_time_ms: float,
    cache_hit: bool,
    ranking_strategy: Optional[str] = None,
) -> SearchAnalytics:
    return SearchAnalytics(
        query_time=query_time_ms,
        total_results=len(results),
        results_by_modality=count_results_by_modality(results),
        average_score=average_score(results),
        cross_modal_matches=count_cross_modal_matches(results),
        cache_hit=cache_hit,
        ranking_strategy=ranking_strategy,
    )


# ── Public API ─────────────────────────────────────────────────────────────
class RetrievalEngine:
    """
    Multi-modal retrieval over an embedding generator and a vector store.

    Usage:
        engine = RetrievalEngine(embedder, vector_store, matcher, config)
        results, analytics = await engine.search(
            SearchQuery(query="vector search", modalities=[ContentType.TEXT]),
        )
    """

    def __init__(
        self,
        embedder: EmbeddingGenerator,
        vector_store: VectorStore,
        cross_modal_matcher=None,
        config: Optional[SearchEngineConfig] = None,
        clock=time.time,
    ):
        self._embedder = embedder
        self._store = vector_store
        self._matcher = cross_modal_matcher
        self.config = config or SearchEngineConfig()
        self._cache: TTLCache[List[SearchResult]] = TTLCache(
            name="result-cache",
            ttl_seconds=self.config.result_cache_ttl_seconds,
            sweep_threshold=RESULT_CACHE_SWEEP_SIZE,
            clock=clock,
        )

        self._total_searches = 0
        self._query_times: deque = deque(maxlen=QUERY_TIME_WINDOW)
        self._query_counts: Counter = Counter()
        self._modality_usage: Counter = Counter()

    @property
    def cache(self) -> TTLCache:
        return self._cache

    async def search(
        self,
        query: SearchQuery,
        options: Optional[SearchOptions] = None,
    ) -> Tuple[List[SearchResult], SearchAnalytics]:
        """
        Execute the retrieval pipeline for one query.

        Returns:
            (results sorted by enhanced score, SearchAnalytics)

        Raises:
            EmbeddingFailedError if the query cannot be embedded.
        """
        t_start = time.perf_counter()
        query = normalize(query, self.config.default_limit, self.config.default_threshold)
        options = options or SearchOptions.from_config(self.config)
        self._record_query(query)

        # ── Cache ──────────────────────────────────────────────────────
        cache_key = build_cache_key(query, options)
        if self.config.enable_result_caching:
            cached = self._cache.get(cache_key)
            if cached is not None:
                results = copy.deepcopy(cached)
                elapsed = (time.perf_counter() - t_start) * 1000
                self._query_times.append(elapsed)
                logger.debug(f"Search cache hit: '{query.query}' ({len(results)} results)")
                return results, summarize(results, elapsed, cache_hit=True)

        # ── Expansion ──────────────────────────────────────────────────
        search_text = query.query
        if options.enable_semantic_expansion:
            try:
                search_text = expand_query(query.query)
            except Exception as e:
                logger.warning(f"Query expansion failed, using original query: {e}")
                search_text = query.query

        # ── Encoding ───────────────────────────────────────────────────
        query_vector = await self._embed_query(search_text)

        # ── Retrieval ──────────────────────────────────────────────────
        results = await self._retrieve(query_vector, query)

        # ── Cross-modal enrichment ─────────────────────────────────────
        if options.enable_cross_modal and self._matcher is not None and results:
            results = await self._matcher.enhance(results, query)

        # ── Filter + boost ─────────────────────────────────────────────
        min_score = options.min_score if options.min_score is not None else query.threshold
        results = [r for r in results if r.relevance_score >= min_score]
        results = apply_boosts(results, query)
        results.sort(key=lambda r: r.relevance_score, reverse=True)

        if options.diversity_factor > 0:
            results = diversify(results, options.diversity_factor, options.max_similar_results)

        max_results = options.max_results if options.max_results is not None else query.limit
        results = results[:max_results]

        if self.config.enable_result_caching:
            self._cache.set(cache_key, copy.deepcopy(results))

        elapsed = (time.perf_counter() - t_start) * 1000
        self._query_times.append(elapsed)
        analytics = summarize(results, elapsed, cache_hit=False)

        logger.info(
            f"Search complete: '{query.query}' | "
            f"modalities={[m.value for m in query.modalities]} | "
            f"results={len(results)} | "
            f"cross_modal={analytics.cross_modal_matches} | "
            f"{elapsed:.1f}ms"
        )
        return results, analytics

    async def _embed_query(self, text: str) -> List[float]:
        query_content = Content(
            id=f"query_{uuid.uuid4().hex[:12]}",
            type=ContentType.TEXT,
            data=text,
            metadata=ContentMetadata(title="Search Query", source="search"),
        )
        try:
            embedding = await with_deadline(
                self._embedder.embed(query_content),
                self.config.collaborator_timeout,
                "embed query",
            )
        except Exception as e:
            logger.error(f"Query embedding failed: {e}")
            raise EmbeddingFailedError(f"Failed to embed query '{text}': {e}") from e
        return embedding.vector

    async def _retrieve(self, vector: List[float], query: SearchQuery) -> List[SearchResult]:
        """Collect filtered hits from every requested modality. Failed modalities contribute nothing."""
        results: List[SearchResult] = []
        timeout = self.config.collaborator_timeout

        for modality in query.modalities:
            try:
                hits = await with_deadline(
                    self._store.search_by_content_type(
                        vector,
                        modality,
                        limit=query.limit * CANDIDATE_MULTIPLIER,
                        threshold=query.threshold,
                        include_metadata=True,
                    ),
                    timeout,
                    f"search {modality.value}",
                )

                kept = 0
                for hit in hits:
                    embedding = hit.embedding
                    if embedding is None:
                        embedding = await with_deadline(
                            self._store.get_embedding(hit.id),
                            timeout,
                            f"get embedding {hit.id}",
                        )
                    if embedding is None:
                        logger.debug(f"No stored embedding for hit {hit.id}, skipping")
                        continue
                    if not passes_filters(embedding, query.filters):
                        continue

                    results.append(SearchResult(
                        id=hit.id,
                        content=reconstruct_content(embedding),
                        type=modality,
                        relevance_score=hit.score,
                        metadata=SearchResultMetadata(applied_filters=query.filters),
                    ))
                    kept += 1

                logger.debug(f"{modality.value}: {len(hits)} hits, {kept} kept after filters")

            except Exception as e:
                logger.warning(f"Search failed for modality {modality.value}: {e}")

        return results

    # ── Bookkeeping ────────────────────────────────────────────────────
    def _record_query(self, query: SearchQuery) -> None:
        self._total_searches += 1
        self._query_counts[query.query.lower()] += 1
        for modality in query.modalities:
            self._modality_usage[modality] += 1

    def get_stats(self) -> Dict[str, Any]:
        avg_time = (
            sum(self._query_times) / len(self._query_times)
            if self._query_times else 0.0
        )
        return {
            "total_searches":     self._total_searches,
            "cache_size":         len(self._cache),
            "cache_hit_rate":     round(self._cache.stats.hit_rate, 4),
            "average_query_time": round(avg_time, 2),
            "popular_queries": [
                {"query": q, "count": n}
                for q, n in self._query_counts.most_common(POPULAR_QUERY_COUNT)
            ],
            "modality_usage": {
                t.value: self._modality_usage.get(t, 0) for t in ContentType
            },
        }

    async def warmup_cache(
        self,
        queries: List[SearchQuery],
        options: Optional[SearchOptions] = None,
    ) -> int:
        """Run each query once, in order. Returns how many succeeded."""
        logger.info(f"Warming result cache with {len(queries)} queries")
        warmed = 0
        for query in queries:
            try:
                await self.search(query, options)
                warmed += 1
            except Exception as e:
                logger.warning(f"Cache warmup failed for '{query.query}': {e}")
        logger.info(f"Result cache warmed: {warmed}/{len(queries)} queries")
        return warmed

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Result cache cleared")
