"""
Contracts the search core consumes from its external collaborators.

The embedding generator turns content into vectors; the vector store answers
per-modality nearest-neighbour queries and returns stored embeddings.
Both are async: every call is a suspension point of the pipeline and is
bounded by `with_deadline`.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from core.exceptions import CollaboratorTimeoutError
from models.schemas import Content, ContentType, Embedding, VectorHit

T = TypeVar("T")


class EmbeddingGenerator(ABC):
    """Turns content (including search queries) into vector embeddings."""

    @abstractmethod
    async def embed(self, content: Content) -> Embedding:
        """Return the embedding for a content item."""


class VectorStore(ABC):
    """Stores embeddings and answers similarity queries per modality."""

    @abstractmethod
    async def search_by_content_type(
        self,
        vector: List[float],
        content_type: ContentType,
        limit: int = 10,
        threshold: float = 0.0,
        include_metadata: bool = True,
        include_vectors: bool = False,
    ) -> List[VectorHit]:
        """Return up to `limit` hits of `content_type` scoring >= threshold, best first."""

    @abstractmethod
    async def get_embedding(self, embedding_id: str) -> Optional[Embedding]:
        """Return a stored embedding, or None if unknown."""

    @abstractmethod
    async def get_storage_stats(self) -> Dict[str, Any]:
        """Return {"embeddings_by_type": {ContentType: count}}."""


async def with_deadline(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await a collaborator call, raising CollaboratorTimeoutError after `timeout` seconds.
    A non-positive timeout disables the deadline.
    """
    if timeout is None or timeout <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise CollaboratorTimeoutError(operation, timeout) from e
