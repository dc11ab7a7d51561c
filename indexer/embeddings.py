# ragcrawl Embeddings Module
# Text -> vector providers: local sentence-transformers or the OpenAI API

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from openai import AsyncOpenAI, OpenAIError
from sentence_transformers import SentenceTransformer

from config.settings import EmbeddingConfig, EmbeddingProviderType

from .errors import EmptyInput, InvalidInput, ProviderError

logger = logging.getLogger(__name__)

OPENAI_MODEL_DIMENSIONS = {
    'text-embedding-3-small': 1536,
    'text-embedding-3-large': 3072,
    'text-embedding-ada-002': 1536,
}
OPENAI_MAX_BATCH_SIZE = 2048


class EmbeddingProvider(ABC):
    """Turns text into fixed-length vectors.

    Callers only use ``embed``/``embed_batch`` and the ``dimensions``,
    ``model_name`` and ``max_batch_size`` attributes; they never need to
    know which implementation is active.
    """

    model_name: str
    dimensions: int
    max_batch_size: int

    @abstractmethod
    async def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Embed a validated, non-empty batch within ``max_batch_size``."""

    async def embed(self, text: str) -> List[float]:
        """Generate embedding for a single text"""
        if not text or not text.strip():
            raise EmptyInput("Text cannot be empty", operation="embed")
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts; result order matches input order."""
        if not texts:
            return []
        if len(texts) > self.max_batch_size:
            raise InvalidInput(
                f"Batch of {len(texts)} exceeds provider ceiling of {self.max_batch_size}",
                operation="embed_batch",
                detail={'batch_size': len(texts)}
            )
        for index, text in enumerate(texts):
            if not text or not text.strip():
                raise EmptyInput("Text cannot be empty", operation="embed_batch", detail={'index': index})

        vectors = await self._embed_texts(texts)

        if len(vectors) != len(texts):
            raise ProviderError(
                f"Provider returned {len(vectors)} embeddings for {len(texts)} texts",
                operation="embed_batch"
            )
        return vectors

    async def close(self) -> None:
        return None

    def info(self) -> dict:
        return {
            'provider': type(self).__name__,
            'model': self.model_name,
            'dimensions': self.dimensions,
            'max_batch_size': self.max_batch_size
        }


class LocalEmbeddingProvider(EmbeddingProvider):
    """sentence-transformers model loaded once at construction."""

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
                 cache_dir: Optional[str] = None, max_batch_size: int = 100):
        self.model_name = model_name
        self.max_batch_size = max_batch_size

        try:
            logger.info(f"Loading embedding model: {model_name}")
            if cache_dir:
                self.model = SentenceTransformer(model_name, cache_folder=cache_dir)
            else:
                self.model = SentenceTransformer(model_name)
        except Exception as e:
            logger.error(f"Failed to load embedding model: {e}")
            raise ProviderError(f"Failed to load embedding model: {e}",
                                operation="load_model", detail=model_name) from e

        self.dimensions = self.model.get_sentence_embedding_dimension()
        logger.info(f"Model loaded successfully. Embedding dimension: {self.dimensions}")

    def _encode(self, texts: List[str]):
        # Mean pooling + L2 normalisation, as the model card recommends
        return self.model.encode(
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False
        )

    async def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        try:
            embeddings = await asyncio.get_event_loop().run_in_executor(None, self._encode, texts)
        except Exception as e:
            logger.error(f"Error generating embeddings: {e}")
            raise ProviderError(f"Failed to generate embedding: {e}",
                                operation="embed", detail={'batch_size': len(texts)}) from e
        return [embedding.tolist() for embedding in embeddings]


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Remote embeddings through the OpenAI API."""

    def __init__(self, api_key: str, model_name: str = "text-embedding-3-small",
                 client: Optional[AsyncOpenAI] = None):
        if not api_key and client is None:
            raise InvalidInput("OPENAI_API_KEY is required for OpenAI embeddings",
                               operation="configure")
        self.model_name = model_name
        self.dimensions = OPENAI_MODEL_DIMENSIONS.get(model_name, 1536)
        self.max_batch_size = OPENAI_MAX_BATCH_SIZE
        self.client = client or AsyncOpenAI(api_key=api_key)
        logger.info(f"Using OpenAI embedding model: {model_name}")

    async def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        try:
            response = await self.client.embeddings.create(
                model=self.model_name,
                input=texts,
                encoding_format="float"
            )
        except OpenAIError as e:
            logger.error(f"Error generating OpenAI embeddings batch: {e}")
            raise ProviderError(f"Failed to generate embeddings: {e}",
                                operation="embed", detail={'batch_size': len(texts)}) from e

        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]

    async def close(self) -> None:
        await self.client.close()


def create_embedding_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Build the provider selected by configuration."""
    if config.provider == EmbeddingProviderType.OPENAI:
        return OpenAIEmbeddingProvider(config.openai_api_key, config.openai_model)
    return LocalEmbeddingProvider(config.model_name, config.cache_dir, config.max_batch_size)
