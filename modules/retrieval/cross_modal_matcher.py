"""
modules/retrieval/cross_modal_matcher.py

Cross-modal relationship discovery for search results.

For a result of one modality (say a TEXT paragraph) this finds related
items in the other requested modalities (the CODE implementing it, the
IMAGE visualising it) and attaches them as CrossModalMatch entries.

Matching per target modality:
  1. Direct similarity search with the source's own vector
  2. Contextual re-weighting (shared tags, shared source path, creation time)
  3. Semantic bridging through TEXT when direct matches are scarce

Found relationships are cached per (source, target modalities) with a TTL.
"""

import re
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from config.search_config import CrossModalConfig
from config.settings import (
    BRIDGE_INTERMEDIATE_LIMIT,
    BRIDGE_INTERMEDIATE_THRESHOLD,
    BRIDGE_PENALTY,
    BRIDGE_TARGET_LIMIT,
    BRIDGE_TARGET_THRESHOLD,
    COLLABORATOR_TIMEOUT_SEC,
    CONTEXTUAL_RELEVANCE_BASE,
    CONTEXTUAL_RELEVANCE_MIN,
    CONTEXTUAL_SOURCE_WEIGHT,
    CONTEXTUAL_TAG_WEIGHT,
    CONTEXTUAL_TEMPORAL_WEIGHT,
    RELATIONSHIP_CACHE_SWEEP_SIZE,
    TEMPORAL_DECAY_DAYS,
)
from core.collaborators import VectorStore, with_deadline
from core.ttl_cache import TTLCache
from models.schemas import (
    ContentMetadata,
    ContentType,
    CrossModalMatch,
    Embedding,
    RelationshipRecord,
    RelationshipType,
    SearchQuery,
    SearchResult,
    as_naive_utc,
)

_SOURCE_SPLIT = re.compile(r"[/\-_.]")

# Fallback relationship by (source, target) modality
_RELATIONSHIP_MAP: Dict[Tuple[ContentType, ContentType], RelationshipType] = {
    (ContentType.TEXT,  ContentType.CODE):  RelationshipType.IMPLEMENTATION_OF,
    (ContentType.CODE,  ContentType.TEXT):  RelationshipType.DOCUMENTATION_OF,
    (ContentType.TEXT,  ContentType.IMAGE): RelationshipType.VISUALIZATION_OF,
    (ContentType.IMAGE, ContentType.TEXT):  RelationshipType.EXPLANATION_OF,
    (ContentType.CODE,  ContentType.IMAGE): RelationshipType.VISUALIZATION_OF,
    (ContentType.AUDIO, ContentType.TEXT):  RelationshipType.EXPLANATION_OF,
}

# Tag hints checked in order; first hit wins over the modality table
_TAG_RELATIONSHIPS: List[Tuple[Tuple[str, ...], RelationshipType]] = [
    (("example", "demo"),            RelationshipType.EXAMPLE_OF),
    (("documentation", "guide"),     RelationshipType.DOCUMENTATION_OF),
    (("implementation", "code"),     RelationshipType.IMPLEMENTATION_OF),
]


# ── Scoring Helpers ────────────────────────────────────────────────────────
def determine_relationship_type(
    source_type: ContentType,
    target_type: ContentType,
    target_metadata: Optional[ContentMetadata],
) -> RelationshipType:
    if target_metadata is not None and target_metadata.tags:
        tags = {t.lower() for t in target_metadata.tags}
        for hints, relationship in _TAG_RELATIONSHIPS:
            if any(h in tags for h in hints):
                return relationship
    return _RELATIONSHIP_MAP.get((source_type, target_type), RelationshipType.SEMANTIC_SIMILARITY)


def _overlap_ratio(left: List[str], right: List[str]) -> float:
    """Items of `left` found in `right`, over the longer list."""
    longest = max(len(left), len(right))
    if longest == 0:
        return 0.0
    right_set = set(right)
    return sum(1 for item in left if item in right_set) / longest


def contextual_relevance(
    source: Embedding,
    target_metadata: Optional[ContentMetadata],
) -> float:
    """
    0.5 base
    + 0.3 x tag overlap (common / longer tag list)
    + 0.2 x source path overlap (parts split on / - _ .)
    + 0.1 x temporal proximity (linear decay over 30 days, only with a target timestamp)
    Capped at 1.0.
    """
    relevance = CONTEXTUAL_RELEVANCE_BASE
    if target_metadata is None:
        return relevance

    source_tags = [t.lower() for t in source.metadata.tags]
    target_tags = [t.lower() for t in target_metadata.tags]
    if source_tags and target_tags:
        relevance += _overlap_ratio(source_tags, target_tags) * CONTEXTUAL_TAG_WEIGHT

    if source.metadata.source and target_metadata.source:
        source_parts = _SOURCE_SPLIT.split(source.metadata.source.lower())
        target_parts = _SOURCE_SPLIT.split(target_metadata.source.lower())
        relevance += _overlap_ratio(source_parts, target_parts) * CONTEXTUAL_SOURCE_WEIGHT

    if source.created_at is not None and target_metadata.timestamp is not None:
        created = as_naive_utc(source.created_at)
        delta = abs((created - as_naive_utc(target_metadata.timestamp)).total_seconds())
        days = delta / 86400
        relevance += max(0.0, 1 - days / TEMPORAL_DECAY_DAYS) * CONTEXTUAL_TEMPORAL_WEIGHT

    return min(relevance, 1.0)


def relationship_cache_key(source_id: str, target_modalities: List[ContentType]) -> str:
    targets = ",".join(sorted(m.value for m in target_modalities))
    return f"{source_id}:{targets}"


# ── Public API ─────────────────────────────────────────────────────────────
class CrossModalMatcher:
    """
    Finds and caches relationships between content of different modalities.

    Usage:
        matcher = CrossModalMatcher(vector_store, CrossModalConfig())
        results = await matcher.enhance(results, query)
        for r in results:
            print(r.id, [m.content_id for m in r.cross_modal_matches])
    """

    def __init__(
        self,
        vector_store: VectorStore,
        config: Optional[CrossModalConfig] = None,
        timeout: float = COLLABORATOR_TIMEOUT_SEC,
        clock=time.time,
    ):
        self._store = vector_store
        self.config = config or CrossModalConfig()
        self.timeout = timeout
        self._cache: TTLCache[List[RelationshipRecord]] = TTLCache(
            name="relationship-cache",
            ttl_seconds=self.config.cache_ttl_seconds,
            sweep_threshold=RELATIONSHIP_CACHE_SWEEP_SIZE,
            clock=clock,
        )

    @property
    def cache(self) -> TTLCache:
        return self._cache

    async def enhance(self, results: List[SearchResult], query: SearchQuery) -> List[SearchResult]:
        """
        Attach cross-modal matches to each result, in place.
        Targets are the requested modalities other than the result's own.
        A result whose embedding is missing, or whose lookup fails, keeps no matches.
        """
        for result in results:
            targets = [m for m in query.modalities if m != result.type]
            if not targets:
                continue
            try:
                embedding = await with_deadline(
                    self._store.get_embedding(result.id),
                    self.timeout,
                    f"get embedding {result.id}",
                )
                if embedding is None:
                    logger.debug(f"No stored embedding for {result.id}, skipping cross-modal")
                    continue
                result.cross_modal_matches = await self.find_cross_modal_matches(embedding, targets)
            except Exception as e:
                logger.warning(f"Cross-modal enhancement failed for {result.id}: {e}")

        return results

    async def find_cross_modal_matches(
        self,
        source: Embedding,
        target_modalities: List[ContentType],
    ) -> List[CrossModalMatch]:
        """
        Return matches for `source` across `target_modalities`, best first.
        Disabled modality pairs are skipped. Served from the relationship cache when fresh.
        """
        cache_key = relationship_cache_key(source.id, target_modalities)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Relationship cache hit: {source.id} ({len(cached)} relationships)")
            return [record.to_match() for record in cached]

        scored: List[Tuple[CrossModalMatch, float]] = []
        for target in target_modalities:
            if target == source.content_type:
                continue
            if not self.config.is_pair_enabled(source.content_type, target):
                logger.debug(f"Modality pair {source.content_type.value}->{target.value} disabled")
                continue
            scored.extend(await self._find_modality_matches(source, target))

        scored.sort(key=lambda pair: pair[0].score, reverse=True)

        # best score per content id wins
        seen = set()
        unique: List[Tuple[CrossModalMatch, float]] = []
        for match, relevance in scored:
            if match.content_id in seen:
                continue
            seen.add(match.content_id)
            unique.append((match, relevance))

        unique = unique[: self.config.max_matches_per_type * len(target_modalities)]

        now = self._cache.now()
        records = [
            RelationshipRecord(
                source_id=source.id,
                source_type=source.content_type,
                target_id=match.content_id,
                target_type=match.type,
                relationship_type=match.relationship,
                confidence=match.score,
                semantic_distance=1 - match.score,
                contextual_relevance=relevance,
                cached_at=now,
            )
            for match, relevance in unique
        ]
        self._cache.set(cache_key, records)

        logger.debug(
            f"Cross-modal matches for {source.id} "
            f"({source.content_type.value} → {[t.value for t in target_modalities]}): {len(unique)}"
        )
        return [match for match, _ in unique]

    async def _find_modality_matches(
        self,
        source: Embedding,
        target: ContentType,
    ) -> List[Tuple[CrossModalMatch, float]]:
        matches: List[Tuple[CrossModalMatch, float]] = []
        try:
            hits = await with_deadline(
                self._store.search_by_content_type(
                    source.vector,
                    target,
                    limit=self.config.max_matches_per_type * 2,
                    threshold=self.config.similarity_threshold,
                    include_metadata=True,
                ),
                self.timeout,
                f"cross-modal search {target.value}",
            )

            for hit in hits:
                if hit.id == source.id:
                    continue
                relevance = contextual_relevance(source, hit.metadata)
                if relevance <= CONTEXTUAL_RELEVANCE_MIN:
                    continue
                matches.append((
                    CrossModalMatch(
                        content_id=hit.id,
                        type=target,
                        score=hit.score * relevance,
                        relationship=determine_relationship_type(
                            source.content_type, target, hit.metadata
                        ),
                    ),
                    relevance,
                ))

            if self.config.use_semantic_bridging and len(matches) < self.config.max_matches_per_type:
                matches.extend(await self._find_bridge_matches(source, target))

        except Exception as e:
            logger.warning(
                f"Cross-modal search {source.content_type.value}->{target.value} failed: {e}"
            )

        return matches[: self.config.max_matches_per_type]

    async def _find_bridge_matches(
        self,
        source: Embedding,
        target: ContentType,
    ) -> List[Tuple[CrossModalMatch, float]]:
        """
        Reach `target` through TEXT neighbours of the source:
        confidence = intermediate x target x BRIDGE_PENALTY.
        Failures are logged at debug level and yield nothing.
        """
        bridged: List[Tuple[CrossModalMatch, float]] = []
        try:
            intermediates = await with_deadline(
                self._store.search_by_content_type(
                    source.vector,
                    ContentType.TEXT,
                    limit=BRIDGE_INTERMEDIATE_LIMIT,
                    threshold=BRIDGE_INTERMEDIATE_THRESHOLD,
                    include_metadata=True,
                    include_vectors=True,
                ),
                self.timeout,
                "bridge intermediate search",
            )

            for intermediate in intermediates:
                if intermediate.embedding is None:
                    continue
                hits = await with_deadline(
                    self._store.search_by_content_type(
                        intermediate.embedding.vector,
                        target,
                        limit=BRIDGE_TARGET_LIMIT,
                        threshold=BRIDGE_TARGET_THRESHOLD,
                        include_metadata=True,
                    ),
                    self.timeout,
                    f"bridge target search {target.value}",
                )
                for hit in hits:
                    if hit.id == source.id:
                        continue
                    confidence = intermediate.score * hit.score * BRIDGE_PENALTY
                    if confidence >= self.config.similarity_threshold:
                        bridged.append((
                            CrossModalMatch(
                                content_id=hit.id,
                                type=target,
                                score=confidence,
                                relationship=RelationshipType.SEMANTIC_SIMILARITY,
                            ),
                            CONTEXTUAL_RELEVANCE_BASE,
                        ))

        except Exception as e:
            logger.debug(f"Semantic bridging to {target.value} failed: {e}")

        return bridged

    # ── Index & Stats ──────────────────────────────────────────────────
    def get_relationship_stats(self) -> Dict[str, Any]:
        total = 0
        total_confidence = 0.0
        by_type: Dict[str, int] = defaultdict(int)
        by_pair: Dict[str, int] = defaultdict(int)

        for records in self._cache.values():
            for record in records:
                total += 1
                total_confidence += record.confidence
                by_type[record.relationship_type.value] += 1
                by_pair[f"{record.source_type.value}->{record.target_type.value}"] += 1

        return {
            "total_relationships":   total,
            "relationships_by_type": dict(by_type),
            "modality_pairs":        dict(by_pair),
            "average_confidence":    total_confidence / total if total else 0.0,
        }

    async def build_cross_modal_index(self) -> int:
        """
        Walk the store's per-modality counts and log them.
        Returns the number of embeddings visited.
        """
        logger.info("Building cross-modal relationship index")
        try:
            stats = await with_deadline(
                self._store.get_storage_stats(),
                self.timeout,
                "get storage stats",
            )
        except Exception as e:
            logger.error(f"Failed to build cross-modal index: {e}")
            raise

        processed = 0
        for content_type, count in stats.get("embeddings_by_type", {}).items():
            if not count:
                continue
            label = content_type.value if isinstance(content_type, ContentType) else content_type
            logger.info(f"Processing {count} {label} embeddings for cross-modal relationships")
            processed += count

        logger.info(
            f"Cross-modal index built: {processed} embeddings, "
            f"{len(self._cache)} cached relationship sets"
        )
        return processed

    def update_config(self, partial: Dict[str, Any]) -> CrossModalConfig:
        """Apply a partial update. Cached relationships were computed under the old config and are dropped."""
        self.config = self.config.merged(partial)
        self._cache.ttl_seconds = self.config.cache_ttl_seconds
        self._cache.clear()
        logger.info(f"Cross-modal config updated: {sorted(partial)}")
        return self.config

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Cross-modal relationship cache cleared")
