"""
modules/ranking/result_ranker.py

Multi-factor re-ranking of retrieval results.

Each result gets six feature scores in [0, 1]:
  semantic     carried relevance from retrieval
  modality     position of its modality in the request
  freshness    keyword hints in source / tags
  popularity   content-type prior + tag count + title presence
  cross_modal  count and quality of cross-modal matches
  metadata     query word overlap with title, description, tags

final_score = sum(feature x weight), capped at 1.0. Weight presets live in
config.settings.RANKING_PRESETS and each sums to 1.0.
"""

from dataclasses import dataclass, fields, replace
from typing import Dict, List, Optional

from loguru import logger

from config.settings import (
    CROSS_MODAL_SATURATION,
    DEFAULT_FRESHNESS,
    FRESHNESS_KEYWORDS,
    POPULARITY_BASE,
    POPULARITY_TAG_CAP,
    POPULARITY_TAG_STEP,
    POPULARITY_TITLE_BOOST,
    POPULARITY_TYPE_BOOSTS,
    RANKING_PRESETS,
)
from models.schemas import ContentType, RankingFeatures, SearchQuery, SearchResult


def _clamp(value: float) -> float:
    return max(0.0, min(value, 1.0))


# ── Weights ────────────────────────────────────────────────────────────────
@dataclass
class RankingWeights:
    semantic:    float = RANKING_PRESETS["general"]["semantic"]
    modality:    float = RANKING_PRESETS["general"]["modality"]
    freshness:   float = RANKING_PRESETS["general"]["freshness"]
    popularity:  float = RANKING_PRESETS["general"]["popularity"]
    cross_modal: float = RANKING_PRESETS["general"]["cross_modal"]
    metadata:    float = RANKING_PRESETS["general"]["metadata"]

    @classmethod
    def from_preset(cls, name: str) -> "RankingWeights":
        """Unknown preset names fall back to "general"."""
        preset = RANKING_PRESETS.get(name)
        if preset is None:
            logger.warning(f"Unknown ranking preset '{name}', using 'general'")
            preset = RANKING_PRESETS["general"]
        return cls(**preset)

    def merged(self, partial: Dict[str, float]) -> "RankingWeights":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(partial) - known)
        if unknown:
            raise ValueError(f"Unknown ranking weight(s): {', '.join(unknown)}")
        return replace(self, **partial)

    def total(self) -> float:
        return sum(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def get_optimal_weights(use_case: str) -> RankingWeights:
    return RankingWeights.from_preset(use_case)


# ── Feature Scores ─────────────────────────────────────────────────────────
def _words_matching(words: List[str], query_terms: List[str]) -> int:
    return sum(1 for w in words if any(t in w or w in t for t in query_terms))


def modality_preference(content_type: ContentType, modalities: List[ContentType]) -> float:
    if content_type not in modalities:
        return 0.0
    index = modalities.index(content_type)
    return 1.0 - (index / len(modalities)) * 0.5


def freshness_score(result: SearchResult) -> float:
    meta = result.content.metadata
    source = (meta.source or "").lower()
    tags = [t.lower() for t in meta.tags]
    for keyword, score in FRESHNESS_KEYWORDS.items():
        if keyword in source or any(keyword in tag for tag in tags):
            return score
    return DEFAULT_FRESHNESS


def popularity_score(result: SearchResult) -> float:
    meta = result.content.metadata
    score = POPULARITY_BASE
    score += POPULARITY_TYPE_BOOSTS.get(result.type.value, 0.0)
    score += min(len(meta.tags) * POPULARITY_TAG_STEP, POPULARITY_TAG_CAP)
    if meta.title:
        score += POPULARITY_TITLE_BOOST
    return _clamp(score)


def cross_modal_score(result: SearchResult) -> float:
    matches = result.cross_modal_matches
    if not matches:
        return 0.0
    count_score = min(len(matches) / CROSS_MODAL_SATURATION, 1.0)
    quality_score = sum(m.score for m in matches) / len(matches)
    return _clamp(count_score * 0.4 + quality_score * 0.6)


def metadata_score(result: SearchResult, query: SearchQuery) -> float:
    query_terms = query.query.lower().split()
    if not query_terms:
        return 0.0
    meta = result.content.metadata
    score = 0.0

    if meta.title:
        title_words = meta.title.lower().split()
        score += _words_matching(title_words, query_terms) / max(len(title_words), 1) * 0.5

    if meta.description:
        desc_words = meta.description.lower().split()
        score += _words_matching(desc_words, query_terms) / max(len(desc_words), 1) * 0.3

    if meta.tags:
        tag_matches = sum(
            1 for tag in meta.tags if any(t in tag.lower() for t in query_terms)
        )
        score += tag_matches / len(meta.tags) * 0.2

    return _clamp(score)


def compute_features(
    result: SearchResult,
    query: SearchQuery,
    weights: RankingWeights,
) -> RankingFeatures:
    features = RankingFeatures(
        semantic_score=_clamp(result.relevance_score),
        modality_preference=_clamp(modality_preference(result.type, query.modalities)),
        freshness_score=_clamp(freshness_score(result)),
        popularity_score=popularity_score(result),
        cross_modal_score=cross_modal_score(result),
        metadata_score=metadata_score(result, query),
    )
    final = (
        features.semantic_score      * weights.semantic
        + features.modality_preference * weights.modality
        + features.freshness_score   * weights.freshness
        + features.popularity_score  * weights.popularity
        + features.cross_modal_score * weights.cross_modal
        + features.metadata_score    * weights.metadata
    )
    features.final_score = _clamp(final)
    return features


# ── Public API ─────────────────────────────────────────────────────────────
class ResultRanker:
    """
    Usage:
        ranker = ResultRanker()
        ranked = ranker.rank(results, query, RankingWeights.from_preset("precise"))
    """

    def rank(
        self,
        results: List[SearchResult],
        query: SearchQuery,
        weights: Optional[RankingWeights] = None,
    ) -> List[SearchResult]:
        """
        Attach ranking_features to each result and replace its relevance_score
        with the final score. Returns the results sorted best first.
        """
        weights = weights or RankingWeights()
        for result in results:
            features = compute_features(result, query, weights)
            result.ranking_features = features
            result.relevance_score = features.final_score

        ranked = sorted(results, key=lambda r: r.relevance_score, reverse=True)

        if ranked:
            avg = sum(r.relevance_score for r in ranked) / len(ranked)
            logger.debug(
                f"Ranked {len(ranked)} results | top={ranked[0].relevance_score:.3f} | avg={avg:.3f}"
            )
        return ranked

    def explain_ranking(
        self,
        result: SearchResult,
        query: SearchQuery,
        weights: Optional[RankingWeights] = None,
    ) -> str:
        """Human-readable per-feature breakdown. Does not modify the result."""
        weights = weights or RankingWeights()
        f = compute_features(result, query, weights)

        rows = [
            ("Semantic",    weights.semantic,    f.semantic_score),
            ("Modality",    weights.modality,    f.modality_preference),
            ("Freshness",   weights.freshness,   f.freshness_score),
            ("Popularity",  weights.popularity,  f.popularity_score),
            ("Cross-Modal", weights.cross_modal, f.cross_modal_score),
            ("Metadata",    weights.metadata,    f.metadata_score),
        ]
        lines = [
            f"Ranking explanation for result: {result.id}",
            f"Final Score: {f.final_score:.3f}",
            "",
            "Component Scores:",
        ]
        for label, weight, score in rows:
            lines.append(f"  {label} ({weight}): {score:.3f} → {score * weight:.3f}")
        return "\n".join(lines)

    def get_optimal_weights(self, use_case: str) -> RankingWeights:
        return get_optimal_weights(use_case)

