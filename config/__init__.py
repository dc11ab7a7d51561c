"""Configuration module for ragcrawl.

Provides configuration for the vector store, cache, embeddings and crawler.
"""

from .settings import (
    AppConfig,
    CacheConfig,
    CrawlerConfig,
    EmbeddingConfig,
    EmbeddingProviderType,
    PostgresConfig,
    RetrievalConfig,
    VectorStoreType
)

__all__ = [
    'AppConfig',
    'CacheConfig',
    'CrawlerConfig',
    'EmbeddingConfig',
    'EmbeddingProviderType',
    'PostgresConfig',
    'RetrievalConfig',
    'VectorStoreType'
]
