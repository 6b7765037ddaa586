"""
Runtime configuration objects for the search core.

Defaults come from config.settings. Each orchestrator holds its own
SearchEngineConfig; `merged()` returns an updated copy so strategies and
`update_config()` never mutate a shared instance.
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

from config.settings import (
    COLLABORATOR_TIMEOUT_SEC,
    CROSS_MODAL_MAX_MATCHES_PER_TYPE,
    CROSS_MODAL_SIMILARITY_THRESHOLD,
    CROSS_MODAL_USE_BRIDGING,
    DEFAULT_LIMIT,
    DEFAULT_THRESHOLD,
    DIVERSITY_FACTOR,
    MAX_RESULTS,
    RANKING_STRATEGY,
    RELATIONSHIP_CACHE_TTL_SEC,
    RESULT_CACHE_TTL_SEC,
)
from models.schemas import ContentType

ModalityPair = Tuple[ContentType, ContentType]


def _check_keys(cls, partial: Dict[str, Any]) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(partial) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} option(s): {', '.join(unknown)}")


@dataclass
class CrossModalConfig:
    similarity_threshold:  float = CROSS_MODAL_SIMILARITY_THRESHOLD
    max_matches_per_type:  int   = CROSS_MODAL_MAX_MATCHES_PER_TYPE
    use_semantic_bridging: bool  = CROSS_MODAL_USE_BRIDGING
    # Explicit per-pair toggles; pairs not listed are enabled.
    modality_pairs: Dict[ModalityPair, bool] = field(default_factory=dict)
    cache_ttl_seconds:     float = RELATIONSHIP_CACHE_TTL_SEC

    def is_pair_enabled(self, source: ContentType, target: ContentType) -> bool:
        return self.modality_pairs.get((source, target), True)

    def merged(self, partial: Dict[str, Any]) -> "CrossModalConfig":
        _check_keys(CrossModalConfig, partial)
        updates = dict(partial)
        if "modality_pairs" in updates:
            pairs = dict(self.modality_pairs)
            pairs.update(updates["modality_pairs"])
            updates["modality_pairs"] = pairs
        return replace(self, **updates)


@dataclass
class SearchEngineConfig:
    enable_cross_modal:        bool  = True
    enable_semantic_expansion: bool  = True
    enable_result_caching:     bool  = True
    max_results:               int   = MAX_RESULTS
    default_limit:             int   = DEFAULT_LIMIT
    default_threshold:         float = DEFAULT_THRESHOLD
    ranking_strategy:          str   = RANKING_STRATEGY
    diversity_factor:          float = DIVERSITY_FACTOR
    max_similar_results:       Optional[int] = None
    collaborator_timeout:      float = COLLABORATOR_TIMEOUT_SEC
    result_cache_ttl_seconds:  float = RESULT_CACHE_TTL_SEC
    cross_modal: CrossModalConfig = field(default_factory=CrossModalConfig)

    def merged(self, partial: Dict[str, Any]) -> "SearchEngineConfig":
        """
        Return a copy with `partial` applied.
        `cross_modal` may be given as a dict of CrossModalConfig fields.
        Raises ValueError on unknown keys.
        """
        _check_keys(SearchEngineConfig, partial)
        updates = dict(partial)
        cross_modal = updates.get("cross_modal")
        if isinstance(cross_modal, dict):
            updates["cross_modal"] = self.cross_modal.merged(cross_modal)
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enable_cross_modal":        self.enable_cross_modal,
            "enable_semantic_expansion": self.enable_semantic_expansion,
            "enable_result_caching":     self.enable_result_caching,
            "max_results":               self.max_results,
            "default_limit":             self.default_limit,
            "default_threshold":         self.default_threshold,
            "ranking_strategy":          self.ranking_strategy,
            "diversity_factor":          self.diversity_factor,
            "max_similar_results":       self.max_similar_results,
            "collaborator_timeout":      self.collaborator_timeout,
            "cross_modal": {
                "similarity_threshold":  self.cross_modal.similarity_threshold,
                "max_matches_per_type":  self.cross_modal.max_matches_per_type,
                "use_semantic_bridging": self.cross_modal.use_semantic_bridging,
                "modality_pairs": {
                    f"{s.value}->{t.value}": enabled
                    for (s, t), enabled in self.cross_modal.modality_pairs.items()
                },
            },
        }
