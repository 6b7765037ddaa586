"""
modules/search/search_orchestrator.py

Public surface of the search core.

SearchOrchestrator wires the pipeline together:
  normalize → RetrievalEngine (cache, expansion, retrieval, cross-modal,
  boosts) → ResultRanker → diversify → suggestions

and adds the management operations: multi-strategy ensembles, ranking
explanations, stats, cache warmup / clearing, and live config updates.

Usage:
    engine = create_search_engine(embedder, vector_store)
    response = await engine.search(
        create_search_query("vector search", [ContentType.TEXT, ContentType.CODE])
    )
    for result in response.results:
        print(result.type.value, result.content.metadata.title, result.relevance_score)
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from config.search_config import CrossModalConfig, SearchEngineConfig
from config.settings import (
    MAX_SUGGESTIONS,
    SUGGESTION_MIN_TERM_LEN,
    SUGGESTION_SOURCE_RESULTS,
)
from core.collaborators import EmbeddingGenerator, VectorStore
from models.schemas import (
    ContentType,
    EnsembleResponse,
    SearchQuery,
    SearchResponse,
    SearchResult,
    StrategyResultSet,
)
from modules.ranking.diversifier import diversify
from modules.ranking.result_blender import ResultBlender
from modules.ranking.result_ranker import RankingWeights, ResultRanker
from modules.retrieval.cross_modal_matcher import CrossModalMatcher
from modules.retrieval.query_normalizer import normalize
from modules.retrieval.retrieval_engine import RetrievalEngine, SearchOptions, summarize


@dataclass
class SearchStrategy:
    """One member of a strategy ensemble: a config override and a blend weight."""
    name:   str
    config: Dict[str, Any] = field(default_factory=dict)
    weight: float          = 1.0


def _strategy_name(strategy: Union[SearchStrategy, Dict[str, Any]], index: int) -> str:
    """Label for log lines, also for malformed strategy dicts."""
    if isinstance(strategy, SearchStrategy):
        return strategy.name
    if isinstance(strategy, dict) and strategy.get("name"):
        return str(strategy["name"])
    return f"strategy-{index}"


# engine config keys that change what a cached result list contains
_RESULT_SHAPING_KEYS = {
    "cross_modal",
    "enable_cross_modal",
    "enable_semantic_expansion",
    "enable_result_caching",
    "default_limit",
    "default_threshold",
    "max_results",
    "diversity_factor",
    "max_similar_results",
}


# ── Suggestions ────────────────────────────────────────────────────────────
def generate_suggestions(query: SearchQuery, results: List[SearchResult]) -> List[str]:
    """
    Frequent title words and tags of the top results that the query lacks,
    appended to the query. A single-modality query also gets a hint to try
    the first other modality.
    """
    query_lower = query.query.lower()
    frequency: Counter = Counter()

    for result in results[:SUGGESTION_SOURCE_RESULTS]:
        meta = result.content.metadata
        terms = (meta.title or "").lower().split() + [t.lower() for t in meta.tags]
        for term in terms:
            if len(term) >= SUGGESTION_MIN_TERM_LEN and term not in query_lower:
                frequency[term] += 1

    # most_common keeps first-seen order among equal counts
    suggestions = [f"{query.query} {term}" for term, _ in frequency.most_common(MAX_SUGGESTIONS)]

    if len(query.modalities) == 1:
        others = [t for t in ContentType if t != query.modalities[0]]
        if others:
            suggestions.append(f"Find {others[0].value} related to: {query.query}")

    return suggestions[:MAX_SUGGESTIONS]


# ── Public API ─────────────────────────────────────────────────────────────
class SearchOrchestrator:
    def __init__(
        self,
        embedder: EmbeddingGenerator,
        vector_store: VectorStore,
        config: Optional[SearchEngineConfig] = None,
        clock=time.time,
    ):
        self.config = config or SearchEngineConfig()
        self._embedder = embedder
        self._store = vector_store
        self._clock = clock

        self._matcher = CrossModalMatcher(
            vector_store,
            self.config.cross_modal,
            timeout=self.config.collaborator_timeout,
            clock=clock,
        )
        self._engine = RetrievalEngine(
            embedder,
            vector_store,
            cross_modal_matcher=self._matcher,
            config=self.config,
            clock=clock,
        )
        self._ranker = ResultRanker()
        self._blender = ResultBlender()

        logger.success(
            f"SearchOrchestrator initialized | strategy={self.config.ranking_strategy} | "
            f"cross_modal={self.config.enable_cross_modal} | "
            f"expansion={self.config.enable_semantic_expansion}"
        )

    @property
    def engine(self) -> RetrievalEngine:
        return self._engine

    @property
    def matcher(self) -> CrossModalMatcher:
        return self._matcher

    def _options_for(self, query: SearchQuery) -> SearchOptions:
        # Diversification runs after ranking here, not inside the engine.
        return SearchOptions(
            enable_cross_modal=self.config.enable_cross_modal,
            enable_semantic_expansion=self.config.enable_semantic_expansion,
            max_results=min(query.limit, self.config.max_results),
            min_score=query.threshold,
            diversity_factor=0.0,
        )

    def _weights(self) -> RankingWeights:
        return RankingWeights.from_preset(self.config.ranking_strategy)

    async def search(self, query: SearchQuery) -> SearchResponse:
        """
        Run one search end to end.

        Raises:
            EmbeddingFailedError if the query cannot be embedded.
        """
        t_start = time.perf_counter()
        normalized = normalize(query, self.config.default_limit, self.config.default_threshold)

        try:
            results, engine_analytics = await self._engine.search(
                normalized, self._options_for(normalized)
            )
        except Exception as e:
            logger.error(f"Search failed for '{normalized.query}': {e}")
            raise

        ranked = self._ranker.rank(results, normalized, self._weights())

        if self.config.diversity_factor > 0:
            ranked = diversify(ranked, self.config.diversity_factor, self.config.max_similar_results)

        suggestions = generate_suggestions(normalized, ranked)
        for result in ranked:
            result.metadata.suggestions = list(suggestions)

        elapsed = (time.perf_counter() - t_start) * 1000
        analytics = summarize(
            ranked,
            elapsed,
            cache_hit=engine_analytics.cache_hit,
            ranking_strategy=self.config.ranking_strategy,
        )

        logger.info(
            f"Search completed: '{normalized.query}' | results={len(ranked)} | "
            f"cache_hit={analytics.cache_hit} | {elapsed:.1f}ms"
        )
        return SearchResponse(results=ranked, analytics=analytics, suggestions=suggestions)

    async def search_with_multiple_strategies(
        self,
        query: SearchQuery,
        strategies: List[Union[SearchStrategy, Dict[str, Any]]],
    ) -> EnsembleResponse:
        """
        Run every strategy in turn on its own orchestrator (own caches, shared
        collaborators) and blend the survivors. A failing strategy is skipped.
        """
        result_sets: List[StrategyResultSet] = []
        breakdown: List[Dict[str, Any]] = []

        for index, strategy in enumerate(strategies):
            name = _strategy_name(strategy, index)
            try:
                if isinstance(strategy, dict):
                    strategy = SearchStrategy(**strategy)
                strategy_config = self.config.merged(strategy.config)
                temp = SearchOrchestrator(
                    self._embedder, self._store, strategy_config, clock=self._clock
                )
                response = await temp.search(query)
                result_sets.append(StrategyResultSet(
                    results=response.results,
                    weight=strategy.weight,
                    strategy_name=strategy.name,
                ))
                breakdown.append({
                    "strategy":  strategy.name,
                    "results":   len(response.results),
                    "avg_score": response.analytics.average_score,
                })
            except Exception as e:
                logger.warning(f"Strategy '{name}' failed: {e}")

        blended = self._blender.blend(result_sets, self.config.max_results)

        logger.info(
            f"Multi-strategy search: {len(result_sets)}/{len(strategies)} strategies succeeded, "
            f"{len(blended)} unique results"
        )
        return EnsembleResponse(
            results=blended,
            analytics={
                "total_strategies":      len(strategies),
                "successful_strategies": len(result_sets),
                "total_unique_results":  len(blended),
            },
            strategy_breakdown=breakdown,
        )

    async def explain_search(self, query: SearchQuery, result_id: str) -> str:
        """Ranking breakdown for one result of `query`. Never raises."""
        try:
            normalized = normalize(query, self.config.default_limit, self.config.default_threshold)
            results, _ = await self._engine.search(normalized, self._options_for(normalized))
            target = next((r for r in results if r.id == result_id), None)
            if target is None:
                return f"Result {result_id} not found in search results"
            return self._ranker.explain_ranking(target, normalized, self._weights())
        except Exception as e:
            logger.warning(f"explain_search failed for {result_id}: {e}")
            return f"Failed to explain search: {e}"

    # ── Management ─────────────────────────────────────────────────────
    def get_search_stats(self) -> Dict[str, Any]:
        stats = self._engine.get_stats()
        stats["cross_modal_stats"] = self._matcher.get_relationship_stats()
        return stats

    async def warmup_search_cache(self, queries: List[SearchQuery]) -> int:
        """
        Search each query once so later identical searches hit the cache,
        then build the cross-modal index. Returns how many queries succeeded.
        """
        logger.info(f"Warming up search caches with {len(queries)} queries")
        warmed = 0
        for query in queries:
            try:
                await self.search(query)
                warmed += 1
            except Exception as e:
                logger.warning(f"Warmup search failed for '{query.query}': {e}")

        try:
            await self._matcher.build_cross_modal_index()
        except Exception as e:
            logger.warning(f"Cross-modal index build during warmup failed: {e}")

        logger.info(f"Search cache warmup completed: {warmed}/{len(queries)}")
        return warmed

    def clear_all_caches(self) -> None:
        self._engine.clear_cache()
        self._matcher.clear_cache()
        logger.info("All search caches cleared")

    def update_config(self, partial: Dict[str, Any]) -> SearchEngineConfig:
        """
        Apply a partial config update in place.
        Raises ValueError on unknown keys; the current config is then left untouched.
        """
        self.config = self.config.merged(partial)
        self._engine.config = self.config
        self._engine.cache.ttl_seconds = self.config.result_cache_ttl_seconds
        self._matcher.timeout = self.config.collaborator_timeout

        if "cross_modal" in partial:
            cross_modal = partial["cross_modal"]
            if isinstance(cross_modal, CrossModalConfig):
                self._matcher.config = cross_modal
                self._matcher.cache.ttl_seconds = cross_modal.cache_ttl_seconds
                self._matcher.clear_cache()
            else:
                self._matcher.update_config(cross_modal)

        if _RESULT_SHAPING_KEYS & set(partial):
            self._engine.clear_cache()

        logger.info(f"Search engine configuration updated: {sorted(partial)}")
        return self.config


def create_search_engine(
    embedder: EmbeddingGenerator,
    vector_store: VectorStore,
    config: Optional[Union[SearchEngineConfig, Dict[str, Any]]] = None,
) -> SearchOrchestrator:
    """Build an orchestrator. `config` may be a full SearchEngineConfig or a partial dict."""
    if isinstance(config, dict):
        config = SearchEngineConfig().merged(config)
    return SearchOrchestrator(embedder, vector_store, config)
