"""
modules/embedding/hashing_embedder.py

Deterministic word-hashing embedder.

Each lower-cased word maps to a fixed pseudo-random vector derived from its
MD5 digest; a text's vector is the count-weighted mean of its word vectors,
L2-normalised. Texts sharing words land close together, unrelated texts sit
near zero cosine similarity. No model download and no GPU, which makes it
the embedder used by the demo and the tests.
"""

import hashlib
from collections import Counter
from typing import Dict, List

import numpy as np
from loguru import logger

from core.collaborators import EmbeddingGenerator
from models.schemas import Content, Embedding

DEFAULT_DIM = 64


class HashingEmbedder(EmbeddingGenerator):
    def __init__(self, dimension: int = DEFAULT_DIM):
        self.dimension = dimension
        self._word_cache: Dict[str, np.ndarray] = {}

    def _word_vector(self, word: str) -> np.ndarray:
        cached = self._word_cache.get(word)
        if cached is not None:
            return cached
        digest = hashlib.md5(word.encode("utf-8")).digest()
        raw = np.frombuffer(digest * (self.dimension // len(digest) + 1), dtype=np.uint8)
        # bytes → [-1, 1] so unrelated words are roughly orthogonal
        vector = raw[: self.dimension].astype(np.float32) / 127.5 - 1.0
        self._word_cache[word] = vector
        return vector

    def embed_text(self, text: str) -> List[float]:
        counts = Counter(w.lower() for w in text.split() if w.strip())
        if not counts:
            return [0.0] * self.dimension
        total = sum(counts.values())
        vector = np.zeros(self.dimension, dtype=np.float32)
        for word, count in counts.items():
            vector += self._word_vector(word) * (count / total)
        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector /= norm
        return vector.tolist()

    @staticmethod
    def text_for(content: Content) -> str:
        """String payloads embed as-is; anything else falls back to its metadata."""
        if isinstance(content.data, str) and content.data.strip():
            return content.data
        meta = content.metadata
        parts = [meta.title or "", meta.description or "", " ".join(meta.tags)]
        return " ".join(p for p in parts if p)

    async def embed(self, content: Content) -> Embedding:
        text = self.text_for(content)
        logger.debug(f"Embedding {content.type.value} content {content.id} ({len(text)} chars)")
        return Embedding(
            id=content.id,
            vector=self.embed_text(text),
            content_type=content.type,
            metadata=content.metadata,
            content_id=content.id,
        )
