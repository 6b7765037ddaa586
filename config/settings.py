"""
Global configuration for the Multi-Modal Search Core.
All constants, thresholds, and ranking presets live here.
Import this in every module instead of hardcoding values.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT    = Path(os.getenv("PROJECT_ROOT", ".")).resolve()
LOG_DIR         = Path(os.getenv("LOG_DIR",     "./logs"))

# ── Query Defaults ─────────────────────────────────────────────────────────
DEFAULT_LIMIT       = int(os.getenv("DEFAULT_LIMIT", "10"))
DEFAULT_THRESHOLD   = float(os.getenv("DEFAULT_THRESHOLD", "0.3"))
MAX_RESULTS         = int(os.getenv("MAX_RESULTS", "20"))
CANDIDATE_MULTIPLIER = 2        # ask the vector store for limit * 2 neighbours

# ── Caching ────────────────────────────────────────────────────────────────
RESULT_CACHE_TTL_SEC          = float(os.getenv("RESULT_CACHE_TTL_SEC", "300"))    # 5 minutes
RELATIONSHIP_CACHE_TTL_SEC    = float(os.getenv("RELATIONSHIP_CACHE_TTL_SEC", "600"))  # 10 minutes
RESULT_CACHE_SWEEP_SIZE       = 100
RELATIONSHIP_CACHE_SWEEP_SIZE = 1000
QUERY_TIME_WINDOW             = 100    # rolling window for average query time
POPULAR_QUERY_COUNT           = 5

# ── Collaborators ──────────────────────────────────────────────────────────
# Every embed / vector-store call is bounded by this deadline.
COLLABORATOR_TIMEOUT_SEC = float(os.getenv("COLLABORATOR_TIMEOUT_SEC", "5.0"))

# ── Query Expansion ────────────────────────────────────────────────────────
EXPANSIONS_PER_TERM = 2
MAX_EXPANSIONS      = 5
SYNONYM_TABLE = {
    "search": ["find", "lookup", "query", "discover"],
    "code":   ["programming", "script", "function", "algorithm"],
    "data":   ["information", "content", "records", "dataset"],
    "ai":     ["artificial intelligence", "machine learning", "ml", "neural"],
    "redis":  ["database", "cache", "storage", "memory"],
    "vector": ["embedding", "similarity", "semantic", "numerical"],
}

# ── Retrieval Boosts ───────────────────────────────────────────────────────
CROSS_MODAL_BOOST_PER_MATCH = 0.1
CROSS_MODAL_BOOST_CAP       = 0.3
TITLE_BOOST_WEIGHT          = 0.2
TAG_BOOST_WEIGHT            = 0.1
METADATA_BOOST_CAP          = 0.3
MODALITY_POSITION_BOOSTS    = (0.1, 0.05)   # first, second requested modality

# ── Cross-Modal Matching ───────────────────────────────────────────────────
CROSS_MODAL_SIMILARITY_THRESHOLD = float(os.getenv("CROSS_MODAL_SIMILARITY_THRESHOLD", "0.4"))
CROSS_MODAL_MAX_MATCHES_PER_TYPE = int(os.getenv("CROSS_MODAL_MAX_MATCHES_PER_TYPE", "5"))
CROSS_MODAL_USE_BRIDGING         = os.getenv("CROSS_MODAL_USE_BRIDGING", "true").lower() == "true"
CONTEXTUAL_RELEVANCE_BASE        = 0.5
CONTEXTUAL_RELEVANCE_MIN         = 0.3
CONTEXTUAL_TAG_WEIGHT            = 0.3
CONTEXTUAL_SOURCE_WEIGHT         = 0.2
CONTEXTUAL_TEMPORAL_WEIGHT       = 0.1
TEMPORAL_DECAY_DAYS              = 30

# Semantic bridging always goes through TEXT
BRIDGE_INTERMEDIATE_LIMIT     = 5
BRIDGE_INTERMEDIATE_THRESHOLD = 0.6
BRIDGE_TARGET_LIMIT           = 2
BRIDGE_TARGET_THRESHOLD       = 0.5
BRIDGE_PENALTY                = 0.8

# ── Ranking ────────────────────────────────────────────────────────────────
RANKING_STRATEGY = os.getenv("RANKING_STRATEGY", "general")

# Weight presets: every preset sums to 1.0
RANKING_PRESETS = {
    "general": {
        "semantic": 0.40, "modality": 0.15, "freshness": 0.10,
        "popularity": 0.10, "cross_modal": 0.15, "metadata": 0.10,
    },
    "recent": {
        "semantic": 0.30, "modality": 0.10, "freshness": 0.40,
        "popularity": 0.05, "cross_modal": 0.10, "metadata": 0.05,
    },
    "popular": {
        "semantic": 0.25, "modality": 0.10, "freshness": 0.05,
        "popularity": 0.40, "cross_modal": 0.10, "metadata": 0.10,
    },
    "precise": {
        "semantic": 0.60, "modality": 0.10, "freshness": 0.05,
        "popularity": 0.05, "cross_modal": 0.05, "metadata": 0.15,
    },
}

# Freshness hints looked up in source / tags, first match wins
FRESHNESS_KEYWORDS = {
    "recent": 1.0,
    "today":  0.9,
    "week":   0.7,
    "month":  0.5,
    "old":    0.2,
}
DEFAULT_FRESHNESS = 0.5

POPULARITY_BASE        = 0.5
POPULARITY_TYPE_BOOSTS = {
    "text":  0.10,
    "code":  0.20,
    "image": 0.15,
    "audio": 0.05,
    "video": 0.25,
}
POPULARITY_TAG_STEP  = 0.05
POPULARITY_TAG_CAP   = 0.2
POPULARITY_TITLE_BOOST = 0.1

CROSS_MODAL_SATURATION = 5      # matches needed for a full count score

# ── Diversification & Blending ─────────────────────────────────────────────
DIVERSITY_FACTOR         = float(os.getenv("DIVERSITY_FACTOR", "0.0"))
DIVERSITY_MIN_SCORE      = 0.1
CONTENT_KEY_TITLE_CHARS  = 20
CONTENT_KEY_TAG_CHARS    = 30
MULTI_STRATEGY_BONUS     = 0.1

# ── Suggestions ────────────────────────────────────────────────────────────
SUGGESTION_SOURCE_RESULTS = 5
SUGGESTION_MIN_TERM_LEN   = 3
MAX_SUGGESTIONS           = 5

# ── Logging ───────────────────────────────────────────────────────────────
LOG_LEVEL = "DEBUG" if os.getenv("DEBUG", "False") == "True" else "INFO"

PROJECT_NAME = "Multi-Modal Search Core"
VERSION      = "1.0.0"
