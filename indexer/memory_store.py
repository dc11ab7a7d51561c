"""In-process vector store backed by numpy.

Keeps documents and unit-normalised embeddings in memory and answers
nearest-neighbour queries by brute-force cosine similarity. Intended for
development and tests; the Postgres adapter is the production store.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .errors import InvalidInput
from .models import Document, SimilarityMatch
from .vector_store import DocumentRecord, VectorStore

logger = logging.getLogger(__name__)


class InMemoryVectorStore(VectorStore):
    """Brute-force cosine store. Writes are serialised with an asyncio lock."""

    def __init__(self, dimensions: int):
        super().__init__(dimensions)
        self._documents: Dict[int, Document] = {}
        self._vectors: Dict[int, np.ndarray] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    @staticmethod
    def _normalize(embedding: Sequence[float]) -> np.ndarray:
        vector = np.asarray(embedding, dtype=np.float32)
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector
        return vector / norm

    def _validate(self, content: str, embedding: Sequence[float], operation: str) -> None:
        if not content or not content.strip():
            raise InvalidInput("Document content cannot be empty", operation=operation)
        self._check_dimensions(embedding, operation)

    def _store(self, content: str, embedding: Sequence[float],
               metadata: Optional[Dict[str, Any]], source: Optional[str]) -> int:
        document_id = self._next_id
        self._next_id += 1
        self._documents[document_id] = Document(
            id=document_id,
            content=content,
            metadata=dict(metadata or {}),
            source_url=source
        )
        self._vectors[document_id] = self._normalize(embedding)
        return document_id

    async def insert(self, content: str, embedding: Sequence[float],
                     metadata: Optional[Dict[str, Any]] = None,
                     source: Optional[str] = None) -> int:
        self._validate(content, embedding, "insert")
        async with self._lock:
            return self._store(content, embedding, metadata, source)

    async def insert_batch(self, records: List[DocumentRecord]) -> List[int]:
        # Validate everything up front so a bad record leaves nothing behind
        for content, embedding, _, _ in records:
            self._validate(content, embedding, "insert_batch")

        async with self._lock:
            ids = [self._store(content, embedding, metadata, source)
                   for content, embedding, metadata, source in records]

        logger.debug(f"Inserted {len(ids)} documents into memory store")
        return ids

    async def nearest_neighbors(self, embedding: Sequence[float], k: int,
                                min_similarity: float) -> List[SimilarityMatch]:
        self._check_dimensions(embedding, "nearest_neighbors")
        if k <= 0 or not self._vectors:
            return []

        query = self._normalize(embedding)
        scored = []
        for document_id, vector in self._vectors.items():
            similarity = float(np.clip(np.dot(query, vector), -1.0, 1.0))
            distance = 1.0 - similarity
            if similarity >= min_similarity:
                scored.append((distance, document_id, similarity))

        scored.sort(key=lambda item: (item[0], item[1]))

        return [
            SimilarityMatch(
                document=self._documents[document_id],
                similarity=similarity,
                distance=max(distance, 0.0)
            )
            for distance, document_id, similarity in scored[:k]
        ]

    async def get_document(self, document_id: int) -> Optional[Document]:
        return self._documents.get(document_id)

    async def delete(self, document_id: int) -> bool:
        async with self._lock:
            if document_id not in self._documents:
                return False
            del self._documents[document_id]
            del self._vectors[document_id]
            return True

    async def count(self) -> int:
        return len(self._documents)
