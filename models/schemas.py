"""
models/schemas.py

Shared data structures for the Multi-Modal Search Core.

Every stage of the pipeline (normalizer, retrieval engine, cross-modal
matcher, ranker, diversifier, blender) reads and writes these types.
Collaborator values (Embedding, VectorHit) are defined here as well so the
core never depends on a concrete vector store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ── Enums ──────────────────────────────────────────────────────────────────
class ContentType(str, Enum):
    """Content modality. Declaration order is the canonical modality order."""
    TEXT  = "text"
    CODE  = "code"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"


class RelationshipType(str, Enum):
    """Kind of relationship between a source item and a cross-modal match."""
    SEMANTIC_SIMILARITY = "semantic_similarity"
    CONCEPTUAL_RELATION = "conceptual_relation"
    IMPLEMENTATION_OF   = "implementation_of"
    DOCUMENTATION_OF    = "documentation_of"
    EXAMPLE_OF          = "example_of"
    VISUALIZATION_OF    = "visualization_of"
    EXPLANATION_OF      = "explanation_of"
    COMPLEMENT_TO       = "complement_to"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def as_naive_utc(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC and stripped; naive ones are taken as UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# ── Content ────────────────────────────────────────────────────────────────
@dataclass
class ContentMetadata:
    """
    Descriptive metadata attached to a content item.
    Keys the core does not recognise are kept in `extra`.
    """
    title:       Optional[str]      = None
    description: Optional[str]      = None
    tags:        List[str]          = field(default_factory=list)
    source:      Optional[str]      = None
    timestamp:   Optional[datetime] = None
    extra:       Dict[str, Any]     = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title":       self.title,
            "description": self.description,
            "tags":        list(self.tags),
            "source":      self.source,
            "timestamp":   _iso(self.timestamp),
            "extra":       dict(self.extra),
        }


@dataclass
class Content:
    id:       str
    type:     ContentType
    data:     Any = ""        # opaque payload, owned by the content store
    metadata: ContentMetadata = field(default_factory=ContentMetadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id":       self.id,
            "type":     self.type.value,
            "metadata": self.metadata.to_dict(),
        }


# ── Query ──────────────────────────────────────────────────────────────────
@dataclass
class DateRange:
    start: datetime
    end:   datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"start": _iso(self.start), "end": _iso(self.end)}


@dataclass
class SearchFilters:
    content_type: Optional[List[ContentType]] = None
    tags:         Optional[List[str]]         = None
    source:       Optional[str]               = None
    date_range:   Optional[DateRange]         = None
    metadata:     Dict[str, Any]              = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_type": (
                [t.value for t in self.content_type]
                if self.content_type is not None else None
            ),
            "tags":       list(self.tags) if self.tags is not None else None,
            "source":     self.source,
            "date_range": self.date_range.to_dict() if self.date_range else None,
            "metadata":   dict(self.metadata),
        }


@dataclass
class SearchQuery:
    query:      str
    modalities: List[ContentType]       = field(default_factory=list)
    limit:      Optional[int]           = None
    threshold:  Optional[float]         = None
    filters:    Optional[SearchFilters] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query":      self.query,
            "modalities": [m.value for m in self.modalities],
            "limit":      self.limit,
            "threshold":  self.threshold,
            "filters":    self.filters.to_dict() if self.filters else None,
        }


# ── Results ────────────────────────────────────────────────────────────────
@dataclass
class CrossModalMatch:
    content_id:   str
    type:         ContentType
    score:        float
    relationship: RelationshipType = RelationshipType.SEMANTIC_SIMILARITY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_id":   self.content_id,
            "type":         self.type.value,
            "score":        round(self.score, 4),
            "relationship": self.relationship.value,
        }


@dataclass
class RankingFeatures:
    """Per-result ranking signals. Computed on demand, never persisted."""
    semantic_score:      float = 0.0
    modality_preference: float = 0.0
    freshness_score:     float = 0.0
    popularity_score:    float = 0.0
    cross_modal_score:   float = 0.0
    metadata_score:      float = 0.0
    final_score:         float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "semantic_score":      round(self.semantic_score, 4),
            "modality_preference": round(self.modality_preference, 4),
            "freshness_score":     round(self.freshness_score, 4),
            "popularity_score":    round(self.popularity_score, 4),
            "cross_modal_score":   round(self.cross_modal_score, 4),
            "metadata_score":      round(self.metadata_score, 4),
            "final_score":         round(self.final_score, 4),
        }


@dataclass
class SearchResultMetadata:
    applied_filters: SearchFilters = field(default_factory=SearchFilters)
    suggestions:     List[str]     = field(default_factory=list)
    search_time:     float         = 0.0     # ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applied_filters": self.applied_filters.to_dict(),
            "suggestions":     list(self.suggestions),
            "search_time":     round(self.search_time, 2),
        }


@dataclass
class SearchResult:
    """
    A single search hit.
    Created by the retrieval engine and mutated in place by the
    cross-modal matcher and the ranker. Read-only once returned.
    """
    id:                  str
    content:             Content
    type:                ContentType
    relevance_score:     float
    cross_modal_matches: List[CrossModalMatch]    = field(default_factory=list)
    metadata:            SearchResultMetadata     = field(default_factory=SearchResultMetadata)
    ranking_features:    Optional[RankingFeatures] = None
    blending_info:       Optional[Dict[str, Any]]  = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id":                  self.id,
            "type":                self.type.value,
            "relevance_score":     round(self.relevance_score, 4),
            "content":             self.content.to_dict(),
            "cross_modal_matches": [m.to_dict() for m in self.cross_modal_matches],
            "metadata":            self.metadata.to_dict(),
            "ranking_features":    (
                self.ranking_features.to_dict() if self.ranking_features else None
            ),
            "blending_info":       self.blending_info,
        }


@dataclass
class RelationshipRecord:
    """
    Cached cross-modal relationship.
    `cached_at` drives TTL expiry; `contextual_relevance` is a 0..1 score.
    """
    source_id:            str
    source_type:          ContentType
    target_id:            str
    target_type:          ContentType
    relationship_type:    RelationshipType
    confidence:           float
    semantic_distance:    float
    contextual_relevance: float
    cached_at:            float     # epoch seconds

    def to_match(self) -> CrossModalMatch:
        return CrossModalMatch(
            content_id=self.target_id,
            type=self.target_type,
            score=self.confidence,
            relationship=self.relationship_type,
        )


# ── Collaborator Values ────────────────────────────────────────────────────
@dataclass
class Embedding:
    id:           str
    vector:       List[float]
    content_type: ContentType
    metadata:     ContentMetadata = field(default_factory=ContentMetadata)
    created_at:   datetime        = field(default_factory=datetime.now)
    content_id:   str             = ""

    def __post_init__(self):
        if not self.content_id:
            self.content_id = self.id


@dataclass
class VectorHit:
    id:        str
    score:     float
    metadata:  Optional[ContentMetadata] = None
    embedding: Optional[Embedding]       = None


# ── Pipeline Outputs ───────────────────────────────────────────────────────
@dataclass
class SearchAnalytics:
    query_time:          float                       # ms
    total_results:       int
    results_by_modality: Dict[ContentType, int]
    average_score:       float
    cross_modal_matches: int
    cache_hit:           bool
    ranking_strategy:    Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query_time":          round(self.query_time, 2),
            "total_results":       self.total_results,
            "results_by_modality": {
                t.value: n for t, n in self.results_by_modality.items()
            },
            "average_score":       round(self.average_score, 4),
            "cross_modal_matches": self.cross_modal_matches,
            "cache_hit":           self.cache_hit,
            "ranking_strategy":    self.ranking_strategy,
        }


@dataclass
class SearchResponse:
    results:     List[SearchResult]
    analytics:   SearchAnalytics
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results":     [r.to_dict() for r in self.results],
            "analytics":   self.analytics.to_dict(),
            "suggestions": list(self.suggestions),
        }


@dataclass
class StrategyResultSet:
    results:       List[SearchResult]
    weight:        float
    strategy_name: str


@dataclass
class EnsembleResponse:
    results:            List[SearchResult]
    analytics:          Dict[str, Any]
    strategy_breakdown: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results":            [r.to_dict() for r in self.results],
            "analytics":          dict(self.analytics),
            "strategy_breakdown": list(self.strategy_breakdown),
        }
