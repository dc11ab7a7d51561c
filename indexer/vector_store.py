"""Abstract vector store interface.

A store persists documents together with their embeddings and answers
cosine nearest-neighbour queries. Implementations:

- ``InMemoryVectorStore`` (numpy, process-local)
- ``PostgresVectorStore`` (asyncpg + pgvector)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import DimensionMismatch
from .models import Document, SimilarityMatch

# (content, embedding, metadata, source)
DocumentRecord = Tuple[str, Sequence[float], Dict[str, Any], Optional[str]]


class VectorStore(ABC):
    """Persists documents + embeddings and answers nearest-neighbour queries."""

    def __init__(self, dimensions: int):
        self.dimensions = dimensions

    def _check_dimensions(self, embedding: Sequence[float], operation: str) -> None:
        if len(embedding) != self.dimensions:
            raise DimensionMismatch(self.dimensions, len(embedding), operation=operation)

    @abstractmethod
    async def insert(self, content: str, embedding: Sequence[float],
                     metadata: Optional[Dict[str, Any]] = None,
                     source: Optional[str] = None) -> int:
        """Insert one document and its embedding atomically, returning the new id."""

    @abstractmethod
    async def insert_batch(self, records: List[DocumentRecord]) -> List[int]:
        """Insert all records or none. Returned ids follow record order."""

    @abstractmethod
    async def nearest_neighbors(self, embedding: Sequence[float], k: int,
                                min_similarity: float) -> List[SimilarityMatch]:
        """Return up to ``k`` matches with similarity >= ``min_similarity``.

        Ordered by descending similarity; ties go to the lower document id.
        """

    @abstractmethod
    async def get_document(self, document_id: int) -> Optional[Document]:
        """Fetch a single document by id."""

    @abstractmethod
    async def delete(self, document_id: int) -> bool:
        """Delete a document and its embedding. False when the id is unknown."""

    @abstractmethod
    async def count(self) -> int:
        """Number of stored documents."""

    async def close(self) -> None:
        """Release any held resources."""
        return None
