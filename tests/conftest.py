"""
tests/conftest.py

Shared fixtures for the search core tests.
Provides a controllable clock, a fixed-vector query embedder, and small
in-memory corpora with hand-picked vectors so similarity scores are known
exactly.
"""

from datetime import datetime
from typing import List, Optional
from unittest.mock import AsyncMock

import pytest

from core.collaborators import EmbeddingGenerator
from models.schemas import ContentMetadata, ContentType, Embedding
from modules.indexing.memory_store import InMemoryVectorStore

QUERY_VECTOR = [1.0, 0.0, 0.0, 0.0]


def build_embedding(
    embedding_id: str,
    content_type: ContentType,
    vector: List[float],
    title: Optional[str] = None,
    tags: Optional[List[str]] = None,
    source: Optional[str] = None,
    created_at: Optional[datetime] = None,
    **extra,
) -> Embedding:
    return Embedding(
        id=embedding_id,
        vector=vector,
        content_type=content_type,
        metadata=ContentMetadata(
            title=title,
            tags=tags or [],
            source=source,
            extra=extra,
        ),
        created_at=created_at or datetime(2026, 1, 15, 12, 0, 0),
    )


# ── Clock ──────────────────────────────────────────────────────────────────
class FakeClock:
    """Callable clock for TTL tests; starts at an arbitrary epoch."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# ── Collaborators ──────────────────────────────────────────────────────────
@pytest.fixture
def query_embedder():
    """Embedder mock that maps every input to QUERY_VECTOR."""
    m = AsyncMock(spec=EmbeddingGenerator)
    m.embed.return_value = Embedding(
        id="query", vector=list(QUERY_VECTOR), content_type=ContentType.TEXT
    )
    return m


@pytest.fixture
def failing_embedder():
    m = AsyncMock(spec=EmbeddingGenerator)
    m.embed.side_effect = RuntimeError("embedding service unavailable")
    return m


@pytest.fixture
def ml_store():
    """
    3 TEXT + 2 CODE items. Cosine similarity to QUERY_VECTOR:
        txt-ml-intro   1.0
        txt-ml-deep    0.8
        txt-cooking    0.0   (below any sensible threshold)
        code-ml-train  0.6
        code-parser    0.0
    """
    store = InMemoryVectorStore()
    store.insert_many([
        build_embedding("txt-ml-intro", ContentType.TEXT, [1.0, 0.0, 0.0, 0.0],
                        title="Machine Learning Introduction", tags=["ml", "guide"],
                        source="docs/ml/intro.md"),
        build_embedding("txt-ml-deep", ContentType.TEXT, [0.8, 0.6, 0.0, 0.0],
                        title="Deep Learning Notes", tags=["ml", "neural"],
                        source="docs/ml/deep.md"),
        build_embedding("txt-cooking", ContentType.TEXT, [0.0, 1.0, 0.0, 0.0],
                        title="Pasta Recipes", tags=["food"], source="blog/pasta.md"),
        build_embedding("code-ml-train", ContentType.CODE, [0.6, 0.0, 0.8, 0.0],
                        title="train model", tags=["ml", "implementation"],
                        source="src/ml/train.py"),
        build_embedding("code-parser", ContentType.CODE, [0.0, 0.0, 0.0, 1.0],
                        title="json parser", tags=["parsing"], source="src/util/parser.py"),
    ])
    return store


@pytest.fixture
def mixed_store():
    """
    8 TEXT items just above 0.8 similarity and 2 CODE items around 0.7.
    Without diversification every TEXT item outranks both CODE items.
    """
    store = InMemoryVectorStore()
    embeddings = []
    for i in range(8):
        x = 0.95 - i * 0.01
        y = (1 - x * x) ** 0.5
        embeddings.append(build_embedding(
            f"txt-{i}", ContentType.TEXT, [x, y, 0.0, 0.0],
            title=f"article {i}", source=f"docs/a{i}.md",
        ))
    for i, x in enumerate([0.72, 0.70]):
        z = (1 - x * x) ** 0.5
        embeddings.append(build_embedding(
            f"code-{i}", ContentType.CODE, [x, 0.0, z, 0.0],
            title=f"snippet {i}", source=f"src/s{i}.py",
        ))
    store.insert_many(embeddings)
    return store
