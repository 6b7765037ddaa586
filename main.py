"""
main.py — Entry point for the Multi-Modal Search Core.
Configures logging and runs a small end-to-end demo over the in-memory
vector store and the hashing embedder.
"""

import asyncio

from loguru import logger

from config.settings import LOG_DIR, LOG_LEVEL, PROJECT_NAME, VERSION
from models.schemas import Content, ContentMetadata, ContentType
from modules.embedding.hashing_embedder import HashingEmbedder
from modules.indexing.memory_store import InMemoryVectorStore
from modules.retrieval.query_normalizer import create_search_query
from modules.search.search_orchestrator import SearchStrategy, create_search_engine


def configure_logging() -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        LOG_DIR / "search_core.log",
        rotation="50MB",
        retention="7 days",
        level=LOG_LEVEL,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}"
    )


DEMO_CORPUS = [
    ("doc-vector-intro", ContentType.TEXT,
     "vector search finds similar embeddings by cosine similarity",
     ContentMetadata(title="Vector Search Basics", tags=["vector", "guide"], source="docs/search/intro.md")),
    ("doc-cache", ContentType.TEXT,
     "a cache keeps recent search results in memory",
     ContentMetadata(title="Result Caching", tags=["cache"], source="docs/search/cache.md")),
    ("code-cosine", ContentType.CODE,
     "def cosine similarity vector search embeddings numpy dot norm",
     ContentMetadata(title="cosine similarity", tags=["vector", "implementation"], source="src/search/cosine.py")),
    ("code-lru", ContentType.CODE,
     "class cache memory results ttl expiry",
     ContentMetadata(title="ttl cache", tags=["cache", "code"], source="src/search/cache.py")),
    ("img-embedding-plot", ContentType.IMAGE,
     "plot of vector embeddings clustered by similarity",
     ContentMetadata(title="Embedding Clusters", tags=["vector", "demo"], source="docs/search/clusters.png")),
]


async def run_demo() -> None:
    embedder = HashingEmbedder()
    store = InMemoryVectorStore()
    for content_id, content_type, text, metadata in DEMO_CORPUS:
        content = Content(id=content_id, type=content_type, data=text, metadata=metadata)
        store.insert(await embedder.embed(content))

    engine = create_search_engine(embedder, store, {"default_threshold": 0.1})
    query = create_search_query(
        "vector search",
        [ContentType.TEXT, ContentType.CODE, ContentType.IMAGE],
        limit=5,
        threshold=0.1,
    )

    response = await engine.search(query)
    print(f"\nResults for '{query.query}':")
    for result in response.results:
        matches = ", ".join(m.content_id for m in result.cross_modal_matches) or "-"
        print(
            f"  [{result.type.value:5}] {result.content.metadata.title:<22} "
            f"{result.relevance_score:.3f}  cross-modal: {matches}"
        )
    print(f"Suggestions: {response.suggestions}")

    ensemble = await engine.search_with_multiple_strategies(query, [
        SearchStrategy(name="general", config={"ranking_strategy": "general"}, weight=1.0),
        SearchStrategy(name="precise", config={"ranking_strategy": "precise"}, weight=0.5),
    ])
    print(f"\nEnsemble: {ensemble.analytics}")

    if response.results:
        print()
        print(await engine.explain_search(query, response.results[0].id))


if __name__ == "__main__":
    configure_logging()
    logger.info(f"{PROJECT_NAME} v{VERSION} starting...")
    print("=" * 60)
    print(PROJECT_NAME)
    print("=" * 60)
    asyncio.run(run_demo())
