"""Explicit construction of the ragcrawl runtime from configuration."""

import logging
from dataclasses import dataclass
from typing import Optional

from config.settings import AppConfig, VectorStoreType
from indexer.embeddings import EmbeddingProvider, create_embedding_provider
from indexer.memory_store import InMemoryVectorStore
from indexer.vector_store import VectorStore

from .cache import QueryCache, create_query_cache
from .crawler import WebCrawler
from .retrieval import RetrievalPipeline

logger = logging.getLogger(__name__)


@dataclass
class RagRuntime:
    """Every long-lived component, owned by whoever called ``build_runtime``."""
    config: AppConfig
    provider: EmbeddingProvider
    store: VectorStore
    cache: QueryCache
    crawler: WebCrawler
    pipeline: RetrievalPipeline

    async def close(self) -> None:
        await self.cache.close()
        await self.store.close()
        await self.provider.close()
        logger.info("Runtime closed")

    async def __aenter__(self) -> 'RagRuntime':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def create_vector_store(config: AppConfig, dimensions: int,
                              initialize_schema: bool = False) -> VectorStore:
    if config.vector_store == VectorStoreType.MEMORY:
        logger.info(f"Using in-memory vector store ({dimensions} dimensions)")
        return InMemoryVectorStore(dimensions)

    # Imported here so memory-only setups never need a database driver loaded
    from indexer.postgres_adapter import PostgresVectorStore

    if initialize_schema:
        await PostgresVectorStore.initialize_schema(config.postgres, dimensions)
    return await PostgresVectorStore.connect(config.postgres, dimensions)


async def build_runtime(config: Optional[AppConfig] = None,
                        initialize_schema: bool = False) -> RagRuntime:
    """Build provider, store, cache, crawler and pipeline.

    The store is sized from the provider so the corpus dimensionality always
    matches the active model.
    """
    config = config or AppConfig.from_env()

    provider = create_embedding_provider(config.embedding)
    try:
        store = await create_vector_store(config, provider.dimensions, initialize_schema)
    except Exception:
        await provider.close()
        raise

    cache = await create_query_cache(config.cache)
    crawler = WebCrawler.from_config(config.crawler)
    pipeline = RetrievalPipeline(provider, store, cache, crawler, config.retrieval)

    logger.info(f"Runtime ready: {provider.model_name} ({provider.dimensions} dims), "
                f"{type(store).__name__}, cache backend {type(cache.backend).__name__}")
    return RagRuntime(config, provider, store, cache, crawler, pipeline)
