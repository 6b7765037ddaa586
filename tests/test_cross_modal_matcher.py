"""
tests/test_cross_modal_matcher.py

Tests for cross-modal relationship discovery:
  1. Relationship typing and contextual relevance
  2. Direct matching, modality-pair toggles and caps
  3. Semantic bridging through TEXT
  4. Relationship cache (hits, TTL expiry)
  5. Result enhancement, stats, index build, config updates
"""

import math
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from config.search_config import CrossModalConfig
from core.collaborators import VectorStore
from models.schemas import (
    Content,
    ContentMetadata,
    ContentType,
    Embedding,
    RelationshipType,
    SearchQuery,
    SearchResult,
    VectorHit,
)
from modules.indexing.memory_store import InMemoryVectorStore
from modules.retrieval.cross_modal_matcher import (
    CrossModalMatcher,
    contextual_relevance,
    determine_relationship_type,
    relationship_cache_key,
)

CREATED = datetime(2026, 1, 15, 12, 0, 0)


# ── Helper factories ───────────────────────────────────────────────────────
def make_embedding(embedding_id, content_type, vector, tags=None, source=None, timestamp=None):
    return Embedding(
        id=embedding_id,
        vector=vector,
        content_type=content_type,
        metadata=ContentMetadata(tags=tags or [], source=source, timestamp=timestamp),
        created_at=CREATED,
    )


def unit2(x):
    """2-D unit vector with first component x, padded to 4 dims."""
    return [x, math.sqrt(1 - x * x), 0.0, 0.0]


def make_search_store():
    store = InMemoryVectorStore()
    store.insert_many([
        make_embedding("t-src", ContentType.TEXT, [1.0, 0.0, 0.0, 0.0],
                       tags=["vector", "search"], source="docs/search/intro.md"),
        make_embedding("c-impl", ContentType.CODE, unit2(0.8),
                       tags=["vector", "implementation"], source="src/search/impl.py"),
        make_embedding("i-plot", ContentType.IMAGE, unit2(0.6),
                       source="docs/search/plot.png"),
    ])
    return store


def make_bridge_store():
    """AUDIO source with no direct CODE neighbour, reachable through TEXT."""
    store = InMemoryVectorStore()
    store.insert_many([
        make_embedding("a-src", ContentType.AUDIO, [1.0, 0.0, 0.0, 0.0]),
        make_embedding("t-bridge", ContentType.TEXT, unit2(0.9)),
        make_embedding("c-far", ContentType.CODE, unit2(0.3)),
    ])
    return store


def no_bridging(**overrides):
    return CrossModalConfig(use_semantic_bridging=False, **overrides)


def make_result(result_id, content_type):
    return SearchResult(
        id=result_id,
        content=Content(id=result_id, type=content_type),
        type=content_type,
        relevance_score=0.9,
    )


# ═══════════════════════════════════════════════════════════════════════════
#  Relationship Typing & Contextual Relevance
# ═══════════════════════════════════════════════════════════════════════════
class TestRelationshipType:
    def test_tag_hints_win(self):
        meta = ContentMetadata(tags=["Demo"])
        assert determine_relationship_type(ContentType.TEXT, ContentType.CODE, meta) == RelationshipType.EXAMPLE_OF
        meta = ContentMetadata(tags=["guide"])
        assert determine_relationship_type(ContentType.TEXT, ContentType.CODE, meta) == RelationshipType.DOCUMENTATION_OF
        meta = ContentMetadata(tags=["code"])
        assert determine_relationship_type(ContentType.IMAGE, ContentType.VIDEO, meta) == RelationshipType.IMPLEMENTATION_OF

    def test_example_beats_documentation(self):
        meta = ContentMetadata(tags=["guide", "example"])
        assert determine_relationship_type(ContentType.TEXT, ContentType.CODE, meta) == RelationshipType.EXAMPLE_OF

    @pytest.mark.parametrize("source,target,expected", [
        (ContentType.TEXT,  ContentType.CODE,  RelationshipType.IMPLEMENTATION_OF),
        (ContentType.CODE,  ContentType.TEXT,  RelationshipType.DOCUMENTATION_OF),
        (ContentType.TEXT,  ContentType.IMAGE, RelationshipType.VISUALIZATION_OF),
        (ContentType.CODE,  ContentType.IMAGE, RelationshipType.VISUALIZATION_OF),
        (ContentType.IMAGE, ContentType.TEXT,  RelationshipType.EXPLANATION_OF),
        (ContentType.AUDIO, ContentType.TEXT,  RelationshipType.EXPLANATION_OF),
        (ContentType.VIDEO, ContentType.AUDIO, RelationshipType.SEMANTIC_SIMILARITY),
    ])
    def test_modality_table(self, source, target, expected):
        assert determine_relationship_type(source, target, ContentMetadata()) == expected


class TestContextualRelevance:
    def source(self, **kwargs):
        return make_embedding("s", ContentType.TEXT, [1.0, 0.0], **kwargs)

    def test_base_without_metadata(self):
        assert contextual_relevance(self.source(), None) == 0.5
        assert contextual_relevance(self.source(), ContentMetadata()) == 0.5

    def test_tag_overlap_over_longer_list(self):
        src = self.source(tags=["ml", "python"])
        target = ContentMetadata(tags=["ML", "rust", "go", "c"])
        assert contextual_relevance(src, target) == pytest.approx(0.5 + 0.25 * 0.3)

    def test_source_path_overlap(self):
        src = self.source(source="docs/ml/intro.md")
        target = ContentMetadata(source="src/ml/train.py")
        assert contextual_relevance(src, target) == pytest.approx(0.5 + 0.25 * 0.2)

    def test_temporal_decay(self):
        src = self.source()
        same_day = ContentMetadata(timestamp=CREATED)
        half = ContentMetadata(timestamp=CREATED - timedelta(days=15))
        stale = ContentMetadata(timestamp=CREATED + timedelta(days=60))
        assert contextual_relevance(src, same_day) == pytest.approx(0.6)
        assert contextual_relevance(src, half) == pytest.approx(0.55)
        assert contextual_relevance(src, stale) == pytest.approx(0.5)

    def test_temporal_aware_timestamp_against_naive_created_at(self):
        src = self.source()
        utc = ContentMetadata(timestamp=CREATED.replace(tzinfo=timezone.utc))
        shifted = ContentMetadata(timestamp=datetime(2026, 1, 15, 14, 0, tzinfo=timezone(timedelta(hours=2))))
        assert contextual_relevance(src, utc) == pytest.approx(0.6)
        assert contextual_relevance(src, shifted) == pytest.approx(0.6)

    def test_capped_at_one(self):
        src = self.source(tags=["a"], source="x/y")
        target = ContentMetadata(tags=["a"], source="x/y", timestamp=CREATED)
        assert contextual_relevance(src, target) == 1.0


def test_relationship_cache_key_sorted():
    assert relationship_cache_key("s1", [ContentType.IMAGE, ContentType.CODE]) == "s1:code,image"


# ═══════════════════════════════════════════════════════════════════════════
#  Direct Matching
# ═══════════════════════════════════════════════════════════════════════════
class TestFindCrossModalMatches:
    @pytest.mark.asyncio
    async def test_direct_matches_scored_by_context(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging())
        source = await store.get_embedding("t-src")

        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE, ContentType.IMAGE])

        assert [m.content_id for m in matches] == ["c-impl", "i-plot"]
        code, image = matches
        assert code.type == ContentType.CODE
        assert code.score == pytest.approx(0.8 * 0.7, abs=1e-4)
        assert code.relationship == RelationshipType.IMPLEMENTATION_OF
        assert image.type == ContentType.IMAGE
        assert image.score == pytest.approx(0.6 * 0.6, abs=1e-4)
        assert image.relationship == RelationshipType.VISUALIZATION_OF

    @pytest.mark.asyncio
    async def test_only_requested_modalities(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging())
        source = await store.get_embedding("t-src")
        matches = await matcher.find_cross_modal_matches(source, [ContentType.IMAGE])
        assert {m.type for m in matches} == {ContentType.IMAGE}

    @pytest.mark.asyncio
    async def test_disabled_pair_skipped(self):
        store = make_search_store()
        config = no_bridging(modality_pairs={(ContentType.TEXT, ContentType.CODE): False})
        matcher = CrossModalMatcher(store, config)
        source = await store.get_embedding("t-src")
        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE, ContentType.IMAGE])
        assert [m.content_id for m in matches] == ["i-plot"]

    @pytest.mark.asyncio
    async def test_below_similarity_threshold_dropped(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging(similarity_threshold=0.7))
        source = await store.get_embedding("t-src")
        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE, ContentType.IMAGE])
        assert [m.content_id for m in matches] == ["c-impl"]

    @pytest.mark.asyncio
    async def test_per_type_cap(self):
        store = InMemoryVectorStore()
        store.insert(make_embedding("src", ContentType.TEXT, [1.0, 0.0, 0.0, 0.0]))
        for i in range(6):
            store.insert(make_embedding(f"c{i}", ContentType.CODE, unit2(0.95 - i * 0.05)))
        matcher = CrossModalMatcher(store, no_bridging(max_matches_per_type=2))
        source = await store.get_embedding("src")
        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE])
        assert [m.content_id for m in matches] == ["c0", "c1"]

    @pytest.mark.asyncio
    async def test_own_id_never_matched(self):
        store = AsyncMock(spec=VectorStore)
        store.search_by_content_type.return_value = [
            VectorHit(id="self", score=0.99, metadata=ContentMetadata()),
            VectorHit(id="other", score=0.9, metadata=ContentMetadata()),
        ]
        matcher = CrossModalMatcher(store, no_bridging())
        source = make_embedding("self", ContentType.TEXT, [1.0])
        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE])
        assert [m.content_id for m in matches] == ["other"]

    @pytest.mark.asyncio
    async def test_deduplicated_by_content_id(self):
        store = AsyncMock(spec=VectorStore)
        store.search_by_content_type.return_value = [
            VectorHit(id="dup", score=0.9, metadata=ContentMetadata()),
            VectorHit(id="dup", score=0.8, metadata=ContentMetadata()),
        ]
        matcher = CrossModalMatcher(store, no_bridging())
        source = make_embedding("s", ContentType.TEXT, [1.0])
        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE])
        assert len(matches) == 1
        assert matches[0].score == pytest.approx(0.9 * 0.5)

    @pytest.mark.asyncio
    async def test_failing_modality_contributes_nothing(self, monkeypatch):
        store = make_search_store()
        original = store.search_by_content_type

        async def flaky(vector, content_type, **kwargs):
            if content_type == ContentType.CODE:
                raise TimeoutError("code index slow")
            return await original(vector, content_type, **kwargs)

        monkeypatch.setattr(store, "search_by_content_type", flaky)
        matcher = CrossModalMatcher(store, no_bridging())
        source = await store.get_embedding("t-src")
        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE, ContentType.IMAGE])
        assert [m.content_id for m in matches] == ["i-plot"]


# ═══════════════════════════════════════════════════════════════════════════
#  Semantic Bridging
# ═══════════════════════════════════════════════════════════════════════════
class TestSemanticBridging:
    @pytest.mark.asyncio
    async def test_bridge_through_text(self):
        store = make_bridge_store()
        matcher = CrossModalMatcher(store, CrossModalConfig(use_semantic_bridging=True))
        source = await store.get_embedding("a-src")

        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE])

        assert len(matches) == 1
        bridged = matches[0]
        assert bridged.content_id == "c-far"
        assert bridged.relationship == RelationshipType.SEMANTIC_SIMILARITY
        similarity = 0.9 * 0.3 + math.sqrt(1 - 0.81) * math.sqrt(1 - 0.09)
        assert bridged.score == pytest.approx(0.9 * similarity * 0.8, abs=1e-4)

    @pytest.mark.asyncio
    async def test_no_bridge_when_disabled(self):
        store = make_bridge_store()
        matcher = CrossModalMatcher(store, no_bridging())
        source = await store.get_embedding("a-src")
        assert await matcher.find_cross_modal_matches(source, [ContentType.CODE]) == []

    @pytest.mark.asyncio
    async def test_bridge_respects_similarity_threshold(self):
        store = make_bridge_store()
        matcher = CrossModalMatcher(store, CrossModalConfig(similarity_threshold=0.5))
        source = await store.get_embedding("a-src")
        assert await matcher.find_cross_modal_matches(source, [ContentType.CODE]) == []

    @pytest.mark.asyncio
    async def test_bridge_failure_is_silent(self, monkeypatch):
        store = make_bridge_store()
        original = store.search_by_content_type

        async def flaky(vector, content_type, **kwargs):
            if kwargs.get("include_vectors"):
                raise ConnectionError("bridge lookup failed")
            return await original(vector, content_type, **kwargs)

        monkeypatch.setattr(store, "search_by_content_type", flaky)
        matcher = CrossModalMatcher(store, CrossModalConfig())
        source = await store.get_embedding("a-src")
        assert await matcher.find_cross_modal_matches(source, [ContentType.CODE]) == []


# ═══════════════════════════════════════════════════════════════════════════
#  Relationship Cache
# ═══════════════════════════════════════════════════════════════════════════
class TestRelationshipCache:
    @pytest.mark.asyncio
    async def test_cache_hit_returns_same_matches(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging())
        source = await store.get_embedding("t-src")
        targets = [ContentType.CODE, ContentType.IMAGE]

        first = await matcher.find_cross_modal_matches(source, targets)
        store.delete("c-impl")
        second = await matcher.find_cross_modal_matches(source, targets)

        assert [m.to_dict() for m in first] == [m.to_dict() for m in second]
        assert matcher.cache.stats.hits == 1

    @pytest.mark.asyncio
    async def test_cache_entry_expires(self, fake_clock):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging(), clock=fake_clock)
        source = await store.get_embedding("t-src")
        targets = [ContentType.CODE, ContentType.IMAGE]

        await matcher.find_cross_modal_matches(source, targets)
        store.delete("c-impl")
        fake_clock.advance(matcher.config.cache_ttl_seconds + 1)
        refreshed = await matcher.find_cross_modal_matches(source, targets)

        assert [m.content_id for m in refreshed] == ["i-plot"]

    @pytest.mark.asyncio
    async def test_records_carry_cached_at(self, fake_clock):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging(), clock=fake_clock)
        source = await store.get_embedding("t-src")
        await matcher.find_cross_modal_matches(source, [ContentType.CODE])

        records = list(matcher.cache.values())[0]
        assert records[0].cached_at == fake_clock.now
        assert records[0].semantic_distance == pytest.approx(1 - records[0].confidence)
        assert 0.0 <= records[0].contextual_relevance <= 1.0

    @pytest.mark.asyncio
    async def test_clear_cache(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging())
        source = await store.get_embedding("t-src")
        await matcher.find_cross_modal_matches(source, [ContentType.CODE])
        matcher.clear_cache()
        assert len(matcher.cache) == 0


# ═══════════════════════════════════════════════════════════════════════════
#  Enhancement, Stats, Index, Config
# ═══════════════════════════════════════════════════════════════════════════
class TestEnhance:
    @pytest.mark.asyncio
    async def test_targets_exclude_own_modality(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging())
        query = SearchQuery(query="q", modalities=[ContentType.TEXT, ContentType.CODE])
        results = [make_result("t-src", ContentType.TEXT)]

        enhanced = await matcher.enhance(results, query)

        assert enhanced is results
        assert [m.content_id for m in results[0].cross_modal_matches] == ["c-impl"]

    @pytest.mark.asyncio
    async def test_single_modality_query_gets_no_matches(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging())
        query = SearchQuery(query="q", modalities=[ContentType.TEXT])
        results = await matcher.enhance([make_result("t-src", ContentType.TEXT)], query)
        assert results[0].cross_modal_matches == []

    @pytest.mark.asyncio
    async def test_missing_embedding_leaves_result_untouched(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging())
        query = SearchQuery(query="q", modalities=[ContentType.TEXT, ContentType.CODE])
        results = await matcher.enhance([make_result("ghost", ContentType.TEXT)], query)
        assert results[0].cross_modal_matches == []

    @pytest.mark.asyncio
    async def test_lookup_failure_is_logged_not_raised(self):
        store = AsyncMock(spec=VectorStore)
        store.get_embedding.side_effect = ConnectionError("down")
        matcher = CrossModalMatcher(store, no_bridging())
        query = SearchQuery(query="q", modalities=[ContentType.TEXT, ContentType.CODE])
        results = await matcher.enhance([make_result("t-src", ContentType.TEXT)], query)
        assert results[0].cross_modal_matches == []


class TestStatsAndIndex:
    @pytest.mark.asyncio
    async def test_relationship_stats(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging())
        source = await store.get_embedding("t-src")
        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE, ContentType.IMAGE])

        stats = matcher.get_relationship_stats()
        assert stats["total_relationships"] == 2
        assert stats["relationships_by_type"] == {
            "implementation_of": 1,
            "visualization_of": 1,
        }
        assert stats["modality_pairs"] == {"text->code": 1, "text->image": 1}
        assert stats["average_confidence"] == pytest.approx(
            sum(m.score for m in matches) / 2
        )

    def test_empty_stats(self):
        matcher = CrossModalMatcher(InMemoryVectorStore())
        stats = matcher.get_relationship_stats()
        assert stats["total_relationships"] == 0
        assert stats["average_confidence"] == 0.0

    @pytest.mark.asyncio
    async def test_build_index_counts_embeddings(self):
        matcher = CrossModalMatcher(make_search_store())
        assert await matcher.build_cross_modal_index() == 3

    @pytest.mark.asyncio
    async def test_build_index_propagates_failure(self):
        store = AsyncMock(spec=VectorStore)
        store.get_storage_stats.side_effect = ConnectionError("down")
        matcher = CrossModalMatcher(store)
        with pytest.raises(ConnectionError):
            await matcher.build_cross_modal_index()

    @pytest.mark.asyncio
    async def test_update_config_applies_and_clears_cache(self):
        store = make_search_store()
        matcher = CrossModalMatcher(store, no_bridging())
        source = await store.get_embedding("t-src")
        await matcher.find_cross_modal_matches(source, [ContentType.CODE, ContentType.IMAGE])

        matcher.update_config({"modality_pairs": {(ContentType.TEXT, ContentType.IMAGE): False}})

        assert len(matcher.cache) == 0
        assert not matcher.config.is_pair_enabled(ContentType.TEXT, ContentType.IMAGE)
        matches = await matcher.find_cross_modal_matches(source, [ContentType.CODE, ContentType.IMAGE])
        assert [m.content_id for m in matches] == ["c-impl"]

    def test_update_config_rejects_unknown_keys(self):
        matcher = CrossModalMatcher(InMemoryVectorStore())
        with pytest.raises(ValueError):
            matcher.update_config({"warp_speed": 9})
