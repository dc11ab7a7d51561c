"""Indexer package for ragcrawl.

Embedding providers, vector stores and the shared data models.
"""

from .errors import (
    CacheUnavailable,
    DimensionMismatch,
    EmptyInput,
    InvalidInput,
    InvalidQuery,
    InvalidSeed,
    ProviderError,
    RagError,
    StoreError,
    TransientFetchFailure
)
from .models import (
    Document,
    DocumentInput,
    IndexResult,
    QueryOptions,
    RetrievalMetadata,
    RetrievalResult,
    SimilarityMatch
)
from .vector_store import VectorStore
from .memory_store import InMemoryVectorStore

__all__ = [
    # Errors
    'RagError',
    'InvalidInput',
    'InvalidQuery',
    'InvalidSeed',
    'EmptyInput',
    'TransientFetchFailure',
    'ProviderError',
    'StoreError',
    'DimensionMismatch',
    'CacheUnavailable',

    # Models
    'Document',
    'DocumentInput',
    'IndexResult',
    'QueryOptions',
    'RetrievalMetadata',
    'RetrievalResult',
    'SimilarityMatch',

    # Stores
    'VectorStore',
    'InMemoryVectorStore'
]
