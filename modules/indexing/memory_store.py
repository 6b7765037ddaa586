"""
modules/indexing/memory_store.py

In-process vector store: one embedding table per modality, brute-force
cosine similarity with numpy.

Responsibilities:
    1. Insert / delete embeddings (idempotent by embedding id)
    2. Search one modality and return scored hits, best first
    3. Return stored embeddings and per-modality counts

Intended for tests, demos and small corpora. There is no ANN index and
nothing is persisted; swap in a real VectorStore for production data.
"""

from typing import Any, Dict, List, Optional

import numpy as np
from loguru import logger

from core.collaborators import VectorStore
from models.schemas import ContentType, Embedding, VectorHit


def _unit(vector: List[float]) -> np.ndarray:
    arr = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(arr))
    return arr / norm if norm > 0 else arr


class InMemoryVectorStore(VectorStore):
    def __init__(self):
        self._embeddings: Dict[str, Embedding] = {}
        # per-modality ids + unit vectors, rebuilt lazily after writes
        self._ids: Dict[ContentType, List[str]] = {}
        self._matrix: Dict[ContentType, np.ndarray] = {}
        self._dirty: set = set()

    def __len__(self) -> int:
        return len(self._embeddings)

    # ── Writes ─────────────────────────────────────────────────────────
    def insert(self, embedding: Embedding) -> None:
        previous = self._embeddings.get(embedding.id)
        if previous is not None and previous.content_type != embedding.content_type:
            self._dirty.add(previous.content_type)
        self._embeddings[embedding.id] = embedding
        self._dirty.add(embedding.content_type)

    def insert_many(self, embeddings: List[Embedding]) -> int:
        for embedding in embeddings:
            self.insert(embedding)
        logger.info(f"Inserted {len(embeddings)} embeddings ({len(self)} total)")
        return len(embeddings)

    def delete(self, embedding_id: str) -> bool:
        embedding = self._embeddings.pop(embedding_id, None)
        if embedding is None:
            return False
        self._dirty.add(embedding.content_type)
        return True

    def _table(self, content_type: ContentType):
        if content_type in self._dirty or content_type not in self._matrix:
            ids = [e.id for e in self._embeddings.values() if e.content_type == content_type]
            vectors = [_unit(self._embeddings[i].vector) for i in ids]
            self._ids[content_type] = ids
            self._matrix[content_type] = (
                np.vstack(vectors) if vectors else np.zeros((0, 0), dtype=np.float32)
            )
            self._dirty.discard(content_type)
        return self._ids[content_type], self._matrix[content_type]

    # ── VectorStore contract ───────────────────────────────────────────
    async def search_by_content_type(
        self,
        vector: List[float],
        content_type: ContentType,
        limit: int = 10,
        threshold: float = 0.0,
        include_metadata: bool = True,
        include_vectors: bool = False,
    ) -> List[VectorHit]:
        ids, matrix = self._table(content_type)
        if not ids or limit <= 0:
            return []

        query = _unit(vector)
        if query.shape[0] != matrix.shape[1]:
            raise ValueError(
                f"Query dim {query.shape[0]} does not match {content_type.value} "
                f"index dim {matrix.shape[1]}"
            )

        scores = matrix @ query
        order = np.argsort(-scores, kind="stable")

        hits: List[VectorHit] = []
        for idx in order:
            score = float(scores[idx])
            if score < threshold:
                break
            embedding = self._embeddings[ids[idx]]
            hits.append(VectorHit(
                id=embedding.id,
                score=max(0.0, min(score, 1.0)),
                metadata=embedding.metadata if include_metadata else None,
                embedding=embedding if include_vectors else None,
            ))
            if len(hits) >= limit:
                break
        return hits

    async def get_embedding(self, embedding_id: str) -> Optional[Embedding]:
        return self._embeddings.get(embedding_id)

    async def get_storage_stats(self) -> Dict[str, Any]:
        counts = {t: 0 for t in ContentType}
        for embedding in self._embeddings.values():
            counts[embedding.content_type] += 1
        return {"embeddings_by_type": counts, "total_embeddings": len(self._embeddings)}
