"""Data models for documents, similarity matches and retrieval results."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .errors import InvalidInput

DEFAULT_TOP_K = 5
DEFAULT_SIMILARITY_THRESHOLD = 0.7


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentInput(BaseModel):
    """A document as supplied by a caller, before it has an id."""
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    source: Optional[str] = None


class Document(BaseModel):
    """A stored document. The id is assigned by the vector store."""
    id: int
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    source_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class SimilarityMatch(BaseModel):
    """A document ranked against a query vector.

    ``similarity`` is ``1 - cosine distance``; ``distance`` is the raw cosine
    distance reported by the store.
    """
    document: Document
    similarity: float
    distance: float


class RetrievalMetadata(BaseModel):
    total_results: int
    average_similarity: float
    query_embedding_dimensions: int


class RetrievalResult(BaseModel):
    """Ranked matches plus the assembled context and citations."""
    query: str
    results: List[SimilarityMatch]
    context: str
    citations: List[str]
    metadata: RetrievalMetadata


class IndexResult(BaseModel):
    document_ids: List[int]
    page_count: int


@dataclass(frozen=True)
class QueryOptions:
    """Options for a retrieval query."""
    top_k: int = DEFAULT_TOP_K
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    include_metadata: bool = True

    def __post_init__(self):
        if isinstance(self.top_k, bool) or not isinstance(self.top_k, int) or self.top_k <= 0:
            raise InvalidInput(f"top_k must be a positive integer, got {self.top_k!r}",
                               operation="query", detail={'top_k': self.top_k})
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise InvalidInput(
                f"similarity_threshold must be in [0, 1], got {self.similarity_threshold!r}",
                operation="query",
                detail={'similarity_threshold': self.similarity_threshold}
            )
